"""
Maintenance page backend.
Traefik sends every request of a resource in maintenance here, with the original Host header.
"""
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session
from proxyconf.persistence.db import get_db
from proxyconf.persistence import repos
from proxyconf.services.maintenance import render_maintenance_page

router = APIRouter()

@router.get("/{path:path}", response_class=HTMLResponse, include_in_schema=False)
def maintenance_page(request: Request, path: str, db: Session = Depends(get_db)):
    """Render the maintenance page of the resource owning the requested host."""
    host = request.headers.get("host", "").split(":")[0]
    resource = repos.ResourceRepo(db).by_full_domain(host) if host else None

    if resource:
        html = render_maintenance_page(
            resource.maintenance_title, resource.maintenance_message, resource.maintenance_estimated_time
        )
    else:
        html = render_maintenance_page(None, None, None)

    return HTMLResponse(html, status_code=503, headers={"Retry-After": "300"})


def create_maintenance_app() -> FastAPI:
    app = FastAPI(title="Maintenance", docs_url=None, redoc_url=None, openapi_url=None)
    app.include_router(router)
    return app
