import argparse
import logging
import sys

from core.config import load_file_config
from core.errors import ImageServerError, ServiceControlError
from servers.image_server import run_foreground
from services.installer import ServiceManager, install_service, remove_service
from services.logger import setup_console_logger

logger = logging.getLogger(__name__)


def get_service_manager() -> ServiceManager:
    if sys.platform != "win32":
        raise ServiceControlError("Windows service control is only available on Windows")
    from services.windows_service import WindowsServiceManager

    return WindowsServiceManager()


def run_as_service() -> None:
    if sys.platform != "win32":
        raise ServiceControlError("This program can only be run as a Windows service or with the debug flag")
    from services.windows_service import run_service

    run_service()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="image_server",
        description="Serve image files over HTTP, as a Windows service or in the foreground.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=["install", "remove", "debug"],
        help="install/remove the service, or run in the foreground with console logging; "
             "omit when started by the service control manager",
    )
    parser.add_argument("--config", type=str, default=None, help="config file for debug mode (default: config.json beside the executable)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_console_logger()

    try:
        if args.command == "install":
            install_service(get_service_manager())
            print("Service installed successfully")
        elif args.command == "remove":
            remove_service(get_service_manager())
            print("Service removed successfully")
        elif args.command == "debug":
            config = load_file_config(args.config)
            logger.info("Debug mode: Serving %s on port %s", config.folder, config.port)
            run_foreground(config)
        else:
            run_as_service()
    except ImageServerError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
