#!/usr/bin/env python
"""
unigate - Gateway Entry Point

Runs the gateway server. The provider configuration file is validated
before the server starts; an invalid configuration exits with status 1.

Usage:
    python main.py

    # Or use uvicorn directly:
    uvicorn unigate.main:create_app --factory --host 127.0.0.1 --port 8080

Environment Variables:
    - APP_CONFIG_FILE=config.toml: Provider configuration file (TOML or JSON)
    - APP_API_HOST / APP_API_PORT: Listen address
    - APP_DEBUG=true: Enable debug mode (and hot reload with DEV_AUTO_RELOAD=true)
    - LOG_LEVEL / LOG_FORMAT: Logging configuration
"""

import sys
from pathlib import Path

import uvicorn

from unigate.core.config import ConfigError, load_gateway_config, settings

root_dir = Path(__file__).parent.resolve()


def main() -> None:
    """Validate the configuration and run the gateway."""
    try:
        gateway_config = load_gateway_config(settings.app.config_file)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    reload = settings.app.app_debug and settings.dev_auto_reload

    # Show startup info
    print("=" * 60)
    print("Starting unigate")
    print("=" * 60)
    print(f"   Environment: {settings.app.app_env}")
    print(f"   Config File: {settings.app.config_file}")
    print(f"   Providers: {len(gateway_config.providers)}")
    print(f"   API Key Auth: {'enabled' if gateway_config.auth_enabled else 'disabled'}")
    print(f"   Hot Reload: {reload}")
    print(f"   Host: {settings.app.api_host}:{settings.app.api_port}")
    print("=" * 60)
    print()

    uvicorn.run(
        "unigate.main:create_app",
        factory=True,
        host=settings.app.api_host,
        port=settings.app.api_port,
        reload=reload,
        workers=1 if reload else settings.app.api_workers,
        log_level=settings.log.level.lower(),
        access_log=settings.log.requests,
        reload_dirs=[str(root_dir / "unigate")] if reload else None,
        reload_delay=0.5,
    )


if __name__ == "__main__":
    main()
