"""
Application entry point for the Proxy Route Configurator.
`python run.py` serves the configuration API, `python run.py maintenance` the maintenance page backend.
"""
import logging
import sys
from proxyconf.main import create_app
from proxyconf.config import settings
from proxyconf.web.maintenance import create_maintenance_app
import uvicorn

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# Create the FastAPI application instances
app = create_app()
maintenance_app = create_maintenance_app()

if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "maintenance":
        uvicorn.run("run:maintenance_app", host="0.0.0.0", port=settings.MAINTENANCE_PORT)
    else:
        uvicorn.run(
            "run:app",
            host="0.0.0.0",
            port=settings.LISTEN_PORT,
            reload=settings.DEBUG_MODE,
        )
