"""Admin HTTP API for the package bundler."""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse

from bundler.config import Config, load_config
from bundler.errors import BundlerError
from bundler.manager import Bundler
from bundler.registry import RegistrationContext
from bundler.render import render_tags

logger = logging.getLogger(__name__)


def create_app(config: Config | None = None) -> FastAPI:
    """Create the admin application.

    Args:
        config: Bundler configuration, loaded from $BUNDLER_CONFIG if omitted

    Returns:
        FastAPI application
    """
    if config is None:
        config = load_config()

    bundler = Bundler(config)

    app = FastAPI(
        title="Package Bundler",
        description="Compile, inspect and reset JS/CSS packages",
        version="1.0.0",
    )
    app.state.bundler = bundler

    def require_package(name: str) -> None:
        if name not in bundler.registry:
            raise HTTPException(status_code=404, detail=f"Unknown package '{name}'")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for Docker and monitoring."""
        return {
            "status": "healthy",
            "version": "1.0.0",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "packages": len(bundler.registry.names()),
            "compiled": len(bundler.list_compiled_names()),
        }

    @app.get("/packages")
    async def list_packages():
        """Declared and compiled package names."""
        return {
            "declared": bundler.registry.names(),
            "compiled": bundler.list_compiled_names(),
        }

    @app.get("/packages/{name}")
    async def get_package(name: str):
        """Compiled record of a package."""
        info = bundler.get_compiled_info(name)
        if info is None:
            raise HTTPException(status_code=404, detail=f"No compressed data for package '{name}' found")
        return info

    @app.post("/packages/{name}/compress")
    def compress_package(name: str):
        """Compile a package, serialized against all other compilations."""
        require_package(name)
        try:
            if not bundler.lock.acquire():
                raise HTTPException(status_code=409, detail="Compilation in progress")
            try:
                compiled = bundler.compile(name)
            finally:
                bundler.lock.release()
        except BundlerError as e:
            logger.error(f"Compressing package {name} failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return {"package": name, "compiled": compiled}

    @app.post("/reset")
    async def reset_all():
        """Reset all compiled packages."""
        return {"reset": bundler.reset()}

    @app.post("/reset/{name}")
    async def reset_package(name: str):
        """Reset one compiled package."""
        return {"reset": bundler.reset(name)}

    @app.get("/packages/{name}/tags", response_class=HTMLResponse)
    def package_tags(name: str):
        """Script and link tags a page using this package would render."""
        require_package(name)
        try:
            context = bundler.register_package(name, RegistrationContext())
        except BundlerError as e:
            logger.error(f"Registering package {name} failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return render_tags(bundler, context)

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(levelname)s:\t%(name)s - %(message)s'
    )
    uvicorn.run(
        "bundler.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8080,
        log_level="info",
    )
