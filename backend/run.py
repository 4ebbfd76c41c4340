"""
PMC Licensing Backend — Uvicorn Launcher
Run this file to start the development server.

Defaults come from Settings (.env / environment): DEBUG turns on hot reload
and LOG_LEVEL sets the uvicorn log level. Flags override both.

Usage:
    python run.py
    python run.py --port 8000
    python run.py --reload
"""
import argparse
import uvicorn

from licensing.config import get_settings


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description=f"{settings.APP_NAME} Server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    parser.add_argument("--reload", action="store_true", default=settings.DEBUG,
                        help="Enable hot reload (default: on when DEBUG is set)")
    parser.add_argument("--workers", type=int, default=1, help="Number of workers (default: 1)")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL.lower(),
                        help=f"Uvicorn log level (default: {settings.LOG_LEVEL.lower()})")

    args = parser.parse_args()
    if settings.is_production and args.reload:
        parser.error("--reload is not allowed when ENVIRONMENT=production")

    print(f"""
    ========================================================
      {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})
      API:     http://{args.host}:{args.port}
      Docs:    http://localhost:{args.port}/docs
      Mock payment: {"on" if settings.MOCK_PAYMENT_ENABLED else "off"}
    ========================================================
    """)

    uvicorn.run(
        "licensing.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
