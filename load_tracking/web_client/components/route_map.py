# load_tracking/web_client/components/route_map.py
from __future__ import annotations

import json
import uuid
from typing import Any, Optional

from nicegui import Client, context, ui

from load_tracking.web_client.route_renderer import RouteView, RouteViewState


# Google Maps JS bootstrap loader
_JS_LOADER = """
(g=>{
    var h,a,k,p="The Google Maps JavaScript API",c="google",l="importLibrary",q="__ib__",m=document,b=window;
    b=b[c]||(b[c]={});
    var d=b.maps||(b.maps={}),r=new Set,e=new URLSearchParams,u=()=>h||(h=new Promise(async(f,n)=>{
        await (a=m.createElement("script"));
        e.set("libraries",[...r]+"");
        for(k in g)e.set(k.replace(/[A-Z]/g,t=>"_"+t[0].toLowerCase()),g[k]);
        e.set("callback",c+".maps."+q);
        a.src=`https://maps.${c}apis.com/maps/api/js?`+e;
        d[q]=f;
        a.onerror=()=>h=n(Error(p+" could not load."));
        a.nonce=m.querySelector("script[nonce]")?.nonce||"";
        m.head.append(a)
    }));
    d[l]?console.warn(p+" only loads once. Ignoring:",g):d[l]=(f,...n)=>r.add(f)&&u().then(()=>d[l](f,...n))
})
"""


class RouteMapComponent:
    """
    Google Maps view of a load's route.

    Draws what a RouteView describes: the polyline through every located
    point, one breadcrumb marker per point and a distinct marker for the
    current position. Placeholder states render without touching the Maps API.
    """

    ROUTE_COLOR = "#2563eb"
    CURRENT_COLOR = "#16a34a"
    BREADCRUMB_COLOR = "#64748b"

    def __init__(self, api_key: Optional[str], height: str = "h-96") -> None:
        self.map_id = f"map_{uuid.uuid4().hex}"
        self.api_key = api_key or ""
        self.height = height
        self.map_element: Optional[ui.element] = None
        self.placeholder: Optional[ui.element] = None
        self.placeholder_label: Optional[ui.label] = None
        self._initialized = False
        self._client: Optional[Client] = None

    def render(self, view: RouteView) -> None:
        """Create the containers. Call once inside the page layout."""
        self._client = context.client
        with ui.element("div").classes(f"w-full {self.height} relative rounded-lg overflow-hidden"):
            self.map_element = ui.element("div").props(f'id="{self.map_id}"').classes(
                "w-full h-full absolute top-0 left-0 z-0 bg-white"
            )
            with ui.column().classes(
                "w-full h-full absolute top-0 left-0 z-10 items-center justify-center bg-gray-100"
            ) as placeholder:
                ui.icon("map", size="4rem", color="gray-400")
                self.placeholder_label = ui.label("").classes("text-gray-500")
            self.placeholder = placeholder

        self.update(view)

    def update(self, view: RouteView) -> None:
        """Redraw from a fresh RouteView."""
        if view.state == RouteViewState.UNCONFIGURED:
            self._show_placeholder(view.message or "")
            return

        if not self._initialized:
            self._init_map_js(view)

        if view.state == RouteViewState.EMPTY:
            # Map stays visible behind the message at the default centre
            self._show_placeholder(view.message or "")
            self._draw(view)
            return

        self._hide_placeholder()
        self._draw(view)

    def _show_placeholder(self, message: str) -> None:
        if self.placeholder_label is not None:
            self.placeholder_label.set_text(message)
        if self.placeholder is not None:
            self.placeholder.set_visibility(True)

    def _hide_placeholder(self) -> None:
        if self.placeholder is not None:
            self.placeholder.set_visibility(False)

    def _init_map_js(self, view: RouteView) -> None:
        self._initialized = True
        js_code = f"""
            {_JS_LOADER}({{
                key: {json.dumps(self.api_key)},
                v: "weekly",
            }});

            window.map_{self.map_id} = null;
            window.onMapReady_{self.map_id} = [];
            window.overlays_{self.map_id} = [];

            window.whenMapReady_{self.map_id} = (callback) => {{
                if (window.map_{self.map_id}) {{
                    callback(window.map_{self.map_id});
                }} else {{
                    window.onMapReady_{self.map_id}.push(callback);
                }}
            }};

            async function initMap_{self.map_id}() {{
                try {{
                    const {{ Map }} = await google.maps.importLibrary("maps");
                    const mapElement = document.getElementById("{self.map_id}");
                    if (!mapElement) {{
                        console.error("Map element not found: {self.map_id}");
                        return;
                    }}
                    window.map_{self.map_id} = new Map(mapElement, {{
                        center: {{ lat: {view.center[0]}, lng: {view.center[1]} }},
                        zoom: {view.zoom},
                        disableDefaultUI: true,
                        zoomControl: true,
                        clickableIcons: false,
                    }});
                    window.onMapReady_{self.map_id}.forEach(cb => cb(window.map_{self.map_id}));
                    window.onMapReady_{self.map_id} = [];
                }} catch (e) {{
                    console.error("Error initializing map {self.map_id}:", e);
                }}
            }}

            initMap_{self.map_id}();
        """
        self._run_javascript(js_code)

    def _draw(self, view: RouteView) -> None:
        """Replace every overlay with the ones described by the view."""
        data: dict[str, Any] = {
            "path": [{"lat": lat, "lng": lng} for lat, lng in view.path],
            "markers": [
                {
                    "lat": m.latitude,
                    "lng": m.longitude,
                    "title": m.title,
                    "current": m.is_current,
                }
                for m in view.markers
            ],
            "center": {"lat": view.center[0], "lng": view.center[1]},
            "zoom": view.zoom,
        }
        js = f"""
        if (window.whenMapReady_{self.map_id}) {{
            window.whenMapReady_{self.map_id}(map => {{
                const data = {json.dumps(data)};
                window.overlays_{self.map_id}.forEach(o => o.setMap(null));
                window.overlays_{self.map_id} = [];

                if (data.path.length >= 2) {{
                    window.overlays_{self.map_id}.push(new google.maps.Polyline({{
                        path: data.path,
                        map: map,
                        strokeColor: "{self.ROUTE_COLOR}",
                        strokeOpacity: 0.9,
                        strokeWeight: 4,
                    }}));
                }}

                data.markers.forEach(m => {{
                    window.overlays_{self.map_id}.push(new google.maps.Marker({{
                        position: {{ lat: m.lat, lng: m.lng }},
                        map: map,
                        title: m.title,
                        zIndex: m.current ? 1000 : 1,
                        icon: {{
                            path: google.maps.SymbolPath.CIRCLE,
                            scale: m.current ? 9 : 5,
                            fillColor: m.current ? "{self.CURRENT_COLOR}" : "{self.BREADCRUMB_COLOR}",
                            fillOpacity: 1,
                            strokeColor: "white",
                            strokeWeight: 2,
                        }},
                    }}));
                }});

                map.setCenter(data.center);
                map.setZoom(data.zoom);
            }});
        }}
        """
        self._run_javascript(js)

    def _run_javascript(self, code: str) -> None:
        # Updates also arrive from live-channel callbacks, outside the page context
        if self._client is not None:
            self._client.run_javascript(code)
        else:
            ui.run_javascript(code)
