from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from typing import List, Optional

# Import the conversion router
from sheetconvert.router import router as convert_router

# Import configuration
from sheetconvert.config import ServiceConfig, TARGET_FORMATS

# Import the orchestrator and strategy construction
from sheetconvert.utils.conversion_base import ConversionStrategy
from sheetconvert.utils.conversion_core import ConversionOrchestrator
from sheetconvert.utils.conversion_lookup import build_strategies

# Import centralized error handling
from sheetconvert.utils.error_handling import (
    ConversionError,
    ErrorCode,
    conversion_error_response,
    create_error_response,
)

# Import centralized HTTP client factory
from sheetconvert.utils.http_client import HTTPClientFactory, lifespan_http_clients

# Import centralized logging configuration
from sheetconvert.utils.logging_config import get_logger


# Set up logging
logger = get_logger()

UPLOAD_FORM = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Spreadsheet converter</title>
    <style>
        body {{ font-family: sans-serif; max-width: 40em; margin: 3em auto; }}
        pre {{ background: #f4f4f4; padding: 1em; }}
    </style>
</head>
<body>
    <h1>Spreadsheet converter</h1>
    <p>Upload an {extensions} file to convert it.</p>
    <form id="upload" action="/upload" method="post" enctype="multipart/form-data">
        <input type="file" name="file" accept="{accept}" required>
        <select name="format">{options}</select>
        <button type="submit">Convert</button>
    </form>
    <pre id="result"></pre>
    <script>
        document.getElementById("upload").addEventListener("submit", async (event) => {{
            event.preventDefault();
            const response = await fetch("/upload", {{ method: "POST", body: new FormData(event.target) }});
            const data = await response.json();
            const result = document.getElementById("result");
            result.textContent = JSON.stringify(data, null, 2);
            if (data.download_url) {{
                const link = document.createElement("a");
                link.href = data.download_url;
                link.textContent = "Download " + data.filename;
                result.appendChild(document.createElement("br"));
                result.appendChild(link);
            }}
        }});
    </script>
</body>
</html>
"""


def render_upload_form(config: ServiceConfig) -> str:
    extensions = sorted(config.allowed_extensions)
    options = "".join(
        f'<option value="{fmt}"{" selected" if fmt == config.default_target_format else ""}>{fmt}</option>'
        for fmt in sorted(TARGET_FORMATS)
    )
    return UPLOAD_FORM.format(
        extensions=" / ".join(extensions),
        accept=",".join(extensions),
        options=options,
    )


def create_app(
    config: Optional[ServiceConfig] = None,
    http_factory: Optional[HTTPClientFactory] = None,
    strategies: Optional[List[ConversionStrategy]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Service configuration, read from SHEETCONVERT_* variables if omitted
        http_factory: HTTP client factory for the remote API strategy
        strategies: Strategies to use instead of the ones the configuration names
    """
    config = config or ServiceConfig.from_env()
    http_factory = http_factory or HTTPClientFactory()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager: directories, strategies and HTTP client cleanup."""
        config.ensure_directories()
        active = strategies if strategies is not None else build_strategies(config, http_factory)
        app.state.orchestrator = ConversionOrchestrator(config, active)
        logger.info(
            f"Spreadsheet conversion service ready (variant={config.variant.value}, "
            f"strategies={[s.name.value for s in active]})"
        )

        # Use the centralized lifespan context manager for proper cleanup
        async with lifespan_http_clients(http_factory):
            yield

    app = FastAPI(lifespan=lifespan)
    app.state.config = config

    # Include the conversion router
    app.include_router(convert_router)

    # Converted files are served from the output directory
    app.mount(
        config.public_download_prefix,
        StaticFiles(directory=str(config.output_dir), check_dir=False),
        name="downloads",
    )

    private_dirs = [config.upload_dir, config.output_dir]

    @app.exception_handler(ConversionError)
    async def conversion_error_handler(request: Request, exc: ConversionError) -> JSONResponse:
        return conversion_error_response(exc, private_dirs)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}")
        return create_error_response(ErrorCode.INTERNAL_ERROR, details="Internal server error")

    @app.get("/ping")
    async def general_ping():
        return {"success": True, "data": "PONG!"}

    @app.get("/health")
    async def health(request: Request):
        """Converter availability and the active strategy order."""
        return await request.app.state.orchestrator.health()

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return render_upload_form(config)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
