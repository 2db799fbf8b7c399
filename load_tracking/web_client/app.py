# load_tracking/web_client/app.py
import os

# Keep NiceGUI's local data out of the project root
os.environ.setdefault('NICEGUI_STORAGE_PATH', '/tmp/load_tracking_nicegui_client')

from nicegui import app, ui

from load_tracking.common.constants import TypeMsg
from load_tracking.common.logger import log_info, log_warning, setup_logging
from load_tracking.config import settings


def create_app() -> None:
    # Importing the views registers their @ui.page routes
    from load_tracking.web_client import views  # noqa: F401

    @ui.page('/')
    async def index():
        ui.label('Open /loads/<load id>/track to follow a load.').classes('text-lg p-4')

    @app.on_startup
    async def startup() -> None:
        setup_logging()
        if not settings.google_maps.GOOGLE_MAPS_API_KEY:
            await log_warning("GOOGLE_MAPS_API_KEY is not set; route maps will show a placeholder")
        await log_info("Web Client started", type_msg=TypeMsg.INFO)


def run_web_client(host: str = "0.0.0.0", port: int = 8082, reload: bool = False) -> None:
    create_app()
    ui.run(
        host=host,
        port=port,
        reload=reload,
        title="Load Tracking",
        show=False,
    )
