from logging import getLogger, FileHandler, Formatter, DEBUG
import os


def setup_logger():
    # Directory for the log file, overridable for containers and tests
    log_directory = os.getenv("LOG_DIR", "logs")

    # Ensure the directory exists
    if not os.path.exists(log_directory):
        os.makedirs(log_directory)

    log_file_path = os.path.join(log_directory, "arena.log")

    file_handler = FileHandler(log_file_path)
    file_handler.setLevel(DEBUG)

    formatter = Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(formatter)

    # Get the root logger
    logger = getLogger()
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO"))
    logger.addHandler(file_handler)

    return logger


# Get the configured logger
logger = setup_logger()
