# Built-in libraries
import logging


class LoggerMixin:
    """
    Gives a class a logger named after its module and class.

    The logger is silent (WARNING level, NullHandler) unless the object is
    built with ``debug=True``, in which case DEBUG records are written to a
    stream handler. The logger is shared per class, so the most recently
    built instance decides its configuration.
    """

    _formatter = logging.Formatter(
        fmt=(
            "%(asctime)s [%(levelname)s] %(name)s.%(funcName)s():%(lineno)d "
            "- %(message)s"
        ),
        datefmt="%H:%M:%S",
    )

    def _setup_logger(self, debug: bool = False) -> logging.Logger:
        """
        Configure the class logger.

        Args:
            debug: Enables debug-level output on a stream handler.

        Returns:
            The configured logger.
        """
        logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        logger.propagate = False

        # Keep the logger quiet by default
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())

        logger.setLevel(logging.WARNING)

        if debug:
            # A single stream handler per logger
            if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
                handler = logging.StreamHandler()
                handler.setFormatter(self._formatter)
                logger.addHandler(handler)
            logger.setLevel(logging.DEBUG)
        else:
            # Shared by the class: drop the handler a debug instance left behind
            for handler in [h for h in logger.handlers if isinstance(h, logging.StreamHandler)]:
                logger.removeHandler(handler)

        self._logger = logger
        self.debug = debug
        return logger

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, "_logger"):
            self._setup_logger()
        return self._logger
