import os
import tomllib
from pathlib import Path


class Configurator:
    """Loads a dict of config from TOML file(s) and behaves like an object, ie config.VALUE"""

    configuration = None

    def __init__(self):
        if not self.configuration:
            self.configure()

    def configure(self):
        # load default settings
        with open(Path(__file__).parent / "config_default.toml", "rb") as f:
            configuration = tomllib.load(f)

        # override with local settings
        local_settings = os.environ.get("TABULAR_EXPORT_SETTINGS", Path.cwd() / "config.toml")
        if Path(local_settings).exists():
            with open(local_settings, "rb") as f:
                configuration.update(tomllib.load(f))

        # override with os env settings
        for config_key in configuration:
            if config_key in os.environ:
                value = os.getenv(config_key)
                # Casting env value
                if isinstance(configuration[config_key], list):
                    value = value.split(",")
                elif isinstance(configuration[config_key], bool):
                    value = value.lower() in ["true", "1", "t", "y", "yes"]
                elif isinstance(configuration[config_key], int):
                    value = int(value)
                elif isinstance(configuration[config_key], float):
                    value = float(value)
                configuration[config_key] = value

        self.configuration = configuration
        self.add_scheme()
        self.check()

    def override(self, **kwargs):
        self.configuration.update(kwargs)
        self.add_scheme()
        self.check()

    def add_scheme(self):
        """Make sure PGREST_ENDPOINT has a scheme"""
        endpoint = self.configuration["PGREST_ENDPOINT"]
        if not endpoint.startswith("http"):
            self.configuration["PGREST_ENDPOINT"] = f"http://{endpoint}"

    def check(self):
        """Sanity check on config"""
        if self.configuration["BATCH_SIZE"] < 1:
            raise ValueError("BATCH_SIZE must be a positive integer")
        if self.configuration["BATCH_SIZE"] > self.configuration["PAGE_SIZE_MAX"]:
            raise ValueError(
                f"BATCH_SIZE ({self.configuration['BATCH_SIZE']}) exceeds "
                f"PAGE_SIZE_MAX ({self.configuration['PAGE_SIZE_MAX']})"
            )

    def __getattr__(self, __name):
        return self.configuration.get(__name)

    @property
    def __dict__(self):
        return self.configuration


config = Configurator()

from tabular_export.core.resolver import get_query, resolve  # noqa: E402
from tabular_export.export import generate_csv  # noqa: E402

__all__ = ["Configurator", "config", "generate_csv", "get_query", "resolve"]
