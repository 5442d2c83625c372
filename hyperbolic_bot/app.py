import sys
import logging

from telegram.request import HTTPXRequest
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    CallbackQueryHandler,
    filters,
)

from .bulk import BulkRegistry, BulkSequencer
from .config import load_settings
from .dispatcher import RequestDispatcher
from .errors import ConfigError
from .handlers import (
    BotServices,
    start,
    switch_command,
    remove_command,
    help_command,
    bulk_command,
    handle_text_message,
    button_callback,
    error_handler,
    post_init,
)
from .hyperbolic import HyperbolicClient
from .session import YamlSessionStore

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


async def post_shutdown(application: Application):
    services: BotServices = application.bot_data["services"]
    await services.bulk_runs.shutdown()
    await services.dispatcher.client.aclose()


def build_application(settings: dict) -> Application:
    client = HyperbolicClient(settings["api_url"], timeout=settings["timeout"])
    services = BotServices(
        sessions=YamlSessionStore(settings["user_data_file"]),
        dispatcher=RequestDispatcher(client),
        sequencer=BulkSequencer(
            policy=settings["bulk_policy"],
            min_delay=settings["bulk_min_delay"],
            max_delay=settings["bulk_max_delay"],
        ),
        bulk_runs=BulkRegistry(),
        implicit_bulk=settings["implicit_bulk"],
    )

    httpx_request = HTTPXRequest(connect_timeout=60.0, read_timeout=60.0, write_timeout=60.0)
    application = (
        Application.builder()
        .token(settings["token"])
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .request(httpx_request)
        .concurrent_updates(True)
        .build()
    )
    application.bot_data["services"] = services

    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("switch", switch_command))
    application.add_handler(CommandHandler("remove", remove_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("bulk", bulk_command))
    application.add_handler(
        MessageHandler(filters.UpdateType.MESSAGE & filters.TEXT & ~filters.COMMAND, handle_text_message)
    )
    application.add_handler(CallbackQueryHandler(button_callback))
    application.add_error_handler(error_handler)
    return application


def main() -> None:
    try:
        settings = load_settings()
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}. Exiting.")
        sys.exit(1)

    application = build_application(settings)
    logger.info("Bot is starting up...")
    application.run_polling()
    logger.info("Bot has been stopped.")


if __name__ == "__main__":
    main()
