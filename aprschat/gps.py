import logging

logger = logging.getLogger(__name__)


class PositionUnavailable(RuntimeError):
    pass


class StaticPosition:
    """Fixed position, usually taken from the [beacon] config section."""

    def __init__(self, latitude=None, longitude=None):
        self.latitude = latitude
        self.longitude = longitude

    def get_position(self):
        if self.latitude is None or self.longitude is None:
            raise PositionUnavailable("No position configured")
        return self.latitude, self.longitude

    @classmethod
    def from_config(cls, cfg):
        lat = cfg.get("beacon", "latitude", fallback="").strip()
        lon = cfg.get("beacon", "longitude", fallback="").strip()
        if not lat or not lon:
            return cls()
        try:
            return cls(float(lat), float(lon))
        except ValueError:
            logger.warning(f"Invalid beacon position in config: {lat!r}, {lon!r}")
            return cls()
