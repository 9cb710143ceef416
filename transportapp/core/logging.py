import logging

from transportapp.core.config import settings


def setup_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL or "INFO").upper(),
        format="[%(asctime)s] %(levelname)-8s %(name)s '%(filename)s:%(lineno)d' | %(message)s",
        datefmt="%m/%d %H:%M:%S",
    )
    # stripe logs every request body at INFO
    logging.getLogger("stripe").setLevel(logging.WARNING)
