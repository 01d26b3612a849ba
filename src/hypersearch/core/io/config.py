# pylint: disable=redefined-builtin
"""
Configuration object
====================

Layered configuration for hypersearch.

An option is resolved, in order of precedence, from a value set directly on
the object, an environment variable, a YAML configuration file and finally
the default given when the option was defined.

"""
import logging
import os
import pprint

import yaml

logger = logging.getLogger(__name__)


NOT_SET = object()

TRUE_STRINGS = ("1", "true", "yes", "on")


class ConfigurationError(Exception):
    """Error raised when a configuration value is requested but not set."""


def _curate(key):
    return key.replace("-", "_")


def _cast(option_type, value):
    if option_type is bool and isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS

    return option_type(value)


class Configuration:
    """Tree of typed options and sub-configurations.

    Examples
    --------
    >>> config = Configuration()
    >>> config.add_option('batch_size', int, 10, 'HS_BATCH_SIZE')
    >>> config.batch_size
    10
    >>> config.load_yaml('worker.yaml')
    >>> config.batch_size
    5
    >>> os.environ['HS_BATCH_SIZE'] = '2'
    >>> config.batch_size
    2
    >>> config.batch_size = 1
    >>> config.batch_size
    1

    """

    SPECIAL_KEYS = ["_config", "_subconfigs", "_yaml", "_default", "_env_var", "_help"]

    def __init__(self):
        self._config = {}
        self._subconfigs = {}

    def load_yaml(self, path):
        """Load a yaml file on top of the default values

        Parameters
        ----------
        path: str
            Path to the configuration file.

        Raises
        -------
        ConfigurationError
            If some option in the yaml file does not exist in the config

        """
        with open(path, encoding="utf8") as f:
            cfg = yaml.safe_load(f)

        if cfg is None:
            return

        self._load_yaml_dict(cfg)

    def _load_yaml_dict(self, config):
        config = dict(config)
        for key in self._config:
            if key not in config:
                continue
            value = config.pop(key)
            logger.debug(
                'Overwritting "%s" default %s with %s',
                key,
                self._config[key].get("default"),
                value,
            )
            self._config[key]["yaml"] = value

        for key, subconfig in self._subconfigs.items():
            if key in config:
                # pylint: disable=protected-access
                subconfig._load_yaml_dict(config.pop(key))

        if config:
            raise ConfigurationError(
                f"Configuration does not have an attribute '{next(iter(config))}'."
            )

    def __getattr__(self, key):
        """Get the value of the option

        Raises
        -------
        ConfigurationError
            If the option does not exist or has no value

        """
        if key == "config" or key.startswith("__"):
            raise AttributeError(key)

        if key in self._subconfigs:
            return self._subconfigs[key]

        if key not in self._config:
            raise ConfigurationError(
                f"Configuration does not have an attribute '{key}'."
            )

        setting = self._config[key]
        if "value" in setting:
            value = setting["value"]
        elif setting.get("env_var") is not None and setting["env_var"] in os.environ:
            value = os.environ[setting["env_var"]]
            if setting["type"] in (list, tuple):
                value = value.split(":")
        elif "yaml" in setting:
            value = setting["yaml"]
        elif "default" in setting:
            value = setting["default"]
        else:
            raise ConfigurationError(
                f"Configuration not set and no default provided: {key}."
            )

        return _cast(setting["type"], value)

    def __setattr__(self, key, value):
        """Set an option value or add a sub-configuration

        Raises
        ------
        TypeError
            If the value cannot be cast to the option type, or if no option exists
            for the key and the value is not a configuration.

        """
        key = _curate(key)
        if key in ["_config", "_subconfigs"]:
            super().__setattr__(key, value)

        elif key in self._config:
            self._validate(key, value)
            self._config[key]["value"] = value

        elif key in self._subconfigs:
            raise ValueError(f"Configuration already contains subconfiguration {key}")

        elif isinstance(value, Configuration):
            self._subconfigs[key] = value

        else:
            raise TypeError(
                f"Can only set {key} as a Configuration, not {type(value)}. "
                "Use add_option to set a new option."
            )

    def _validate(self, key, value):
        if isinstance(value, Configuration):
            raise TypeError(f"Cannot overwrite option {key} with a configuration")

        try:
            _cast(self._config[key]["type"], value)
        except (TypeError, ValueError) as e:
            raise TypeError(
                f"Option {key} of type {self._config[key]['type']} "
                f"cannot be set to {value} with type {type(value)}"
            ) from e

    def __setitem__(self, key, value):
        """Set option value with a dotted key, ex: ``config['worker.batch_size'] = 3``"""
        keys = [_curate(k) for k in key.split(".")]

        if len(keys) == 2 and keys[-1] in self.SPECIAL_KEYS:
            self._validate(keys[0], value)
            self._config[keys[0]][keys[1].lstrip("_")] = value
        elif len(keys) == 1:
            setattr(self, keys[0], value)
        else:
            getattr(self, keys[0])[".".join(keys[1:])] = value

    def __getitem__(self, key):
        """Get option value with a dotted key, ex: ``config['worker.batch_size']``"""
        keys = [_curate(k) for k in key.split(".")]

        if len(keys) == 2 and keys[1] in self.SPECIAL_KEYS:
            if keys[0] not in self._config:
                raise ConfigurationError(
                    f"Configuration does not have an attribute '{keys[0]}'."
                )
            return self._config[keys[0]].get(keys[1][1:], None)
        elif len(keys) > 1:
            return getattr(self, keys[0])[".".join(keys[1:])]

        return getattr(self, keys[0])

    def add_option(self, key, option_type, default=NOT_SET, env_var=None, help=None):
        """Add a configuration setting.

        Parameters
        ----------
        key : str
            The name of the configuration setting. Must be a valid attribute name.
        option_type : callable
            A function such as ``float``, ``int`` or ``str`` casting the raw value.
            Values coming from environment variables are always strings.
        default : object, optional
            Value returned when nothing else sets the option.
            If not given, reading the option raises ``ConfigurationError``.
        env_var : str, optional
            Name of the environment variable overriding the yaml value.
        help : str, optional
            Documentation of the option, reused in command line helps.

        """
        key = _curate(key)
        if key in self._config or key in self._subconfigs:
            raise ValueError(f"Configuration already contains {key}")

        self._config[key] = {"type": option_type}
        if env_var is not None:
            self._config[key]["env_var"] = env_var
        if default is not NOT_SET:
            self._config[key]["default"] = default

        if help is None:
            help = "Undocumented"
        if default is not NOT_SET:
            help += f" (default: {default})"
        self._config[key]["help"] = help

    def help(self, key):
        """Return the help message for the given option."""
        return self[key + "._help"]

    def add_arguments(self, parser, rename=None):
        """Add arguments to an `argparse` parser for the options of this level

        Sub-configurations and options of type dict or list are ignored.
        Arguments have no default so that unset ones fall back on the configuration.

        """
        rename = rename or {}
        for key, item in self._config.items():
            if item["type"] in (dict, list, tuple):
                continue

            parser.add_argument(
                rename.get(key, f"--{key.replace('_', '-')}"),
                type=item["type"],
                help=item.get("help"),
            )

    def __contains__(self, key):
        """Return True if the option is defined."""
        return key in self._config or key in self._subconfigs

    def to_dict(self):
        """Return a dictionary representation of the configuration"""
        config = {key: self[key] for key in self._config}
        for key, subconfig in self._subconfigs.items():
            config[key] = subconfig.to_dict()

        return config

    def from_dict(self, config):
        """Set the configuration from a dictionary, unsetting missing options"""
        logger.debug("Setting config to %s", config)

        for key, setting in self._config.items():
            value = config.get(key, NOT_SET)
            if value is NOT_SET:
                setting.pop("value", None)
            else:
                self[key] = value

        for key, subconfig in self._subconfigs.items():
            subconfig.from_dict(config.get(key, {}))

    def __repr__(self) -> str:
        return pprint.pformat(self.to_dict())
