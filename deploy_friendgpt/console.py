import os
import logging

logger = logging.getLogger("deploy_friendgpt")

DEFAULT_LOG_FILE = "/var/log/friendgpt_setup.log"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Console colors for logs
class bcolors:
    HEADER = '\033[95m'
    OKBLUE = '\033[94m'
    OKORANGE = '\033[38;5;214m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    WARNING = '\033[93m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def configure_logging(log_file=None):
    """Log to the console and, when it can be opened, to the setup log file.

    Returns the log file path actually in use, or None for console only.
    """
    log_file = log_file or os.environ.get("DEPLOY_LOG_FILE") or DEFAULT_LOG_FILE
    handlers = [logging.StreamHandler()]
    try:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    except OSError as e:
        print(f"Warning: could not open log file {log_file}: {e}")
        log_file = None

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers, force=True)
    return log_file


def print_info(msg):
    logger.info(f"{bcolors.OKBLUE}[INFO]{bcolors.ENDC} {msg}")

def print_build(msg):
    logger.info(f"{bcolors.OKORANGE}[BUILD]{bcolors.ENDC} {msg}")

def print_success(msg):
    logger.info(f"{bcolors.OKGREEN}[SUCCESS]{bcolors.ENDC} {msg}")

def print_warn(msg):
    logger.warning(f"{bcolors.WARNING}[WARNING]{bcolors.ENDC} {msg}")

def print_error(msg):
    logger.error(f"{bcolors.FAIL}[ERROR]{bcolors.ENDC} {msg}")
