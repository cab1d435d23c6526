import logging
from .colors import Colors


class LogFormatter(logging.Formatter):
    """Console formatter: "time - logger - LEVEL - message", colored per level when use_color is set"""

    DATEFMT = "%Y-%m-%d %H:%M:%S"
    TEMPLATE = "{time} - {name} - {level} - %(message)s"

    def __init__(self, use_color: bool = True):
        super().__init__(datefmt=self.DATEFMT)
        self.use_color = use_color
        self._plain = logging.Formatter(self._layout(None), datefmt=self.DATEFMT)
        self._by_level = {
            levelno: logging.Formatter(self._layout(code), datefmt=self.DATEFMT)
            for levelno, code in Colors.LEVELS.items()
        }

    @classmethod
    def _layout(cls, level_code):
        if level_code is None:
            return cls.TEMPLATE.format(time="%(asctime)s", name="%(name)s", level="%(levelname)s")
        return cls.TEMPLATE.format(
            time=Colors.colorize("%(asctime)s", Colors.GREY),
            name=Colors.colorize("%(name)s", Colors.CYAN),
            level=Colors.colorize("%(levelname)s", level_code),
        )

    def format(self, record):
        if not self.use_color:
            return self._plain.format(record)
        formatter = self._by_level.get(record.levelno, self._by_level[logging.INFO])
        return formatter.format(record)
