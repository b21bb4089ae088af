from pypolaris.log.logger import parse_log_level, set_log_level_from_env, setup_logger

__all__ = ["parse_log_level", "set_log_level_from_env", "setup_logger"]
