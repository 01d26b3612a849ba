"""
hypersearch is a distributed hyperparameter search for sequence prediction models.

Many workers share one job store. Each worker asks a search strategy for
candidate model configurations, claims one, evaluates it over a data stream
and reports its progress back, so that the strategy can propose better
candidates. Exactly one model per job ends up elected as the best model and
its predictions are the only ones kept.
"""
import logging
import os
import socket

from appdirs import AppDirs

from hypersearch.core.io.config import Configuration

logger = logging.getLogger(__name__)


__descr__ = "Distributed hyperparameter search workers"
__version__ = "0.3.0"
__license__ = "BSD-3-Clause"
__author__ = "hypersearch developers"
__author_short__ = "hypersearch"
__author_email__ = "hypersearch@users.noreply.github.com"
__copyright__ = "2022-2026, hypersearch developers"
__url__ = "https://github.com/hypersearch/hypersearch"

DIRS = AppDirs(__name__, __author_short__)
del AppDirs

DEF_CONFIG_FILES_PATHS = [
    os.path.join(DIRS.site_data_dir, "hypersearch_config.yaml.example"),
    os.path.join(DIRS.site_config_dir, "hypersearch_config.yaml"),
    os.path.join(DIRS.user_config_dir, "hypersearch_config.yaml"),
]


def define_config():
    """Create and define the fields of the configuration object."""
    config = Configuration()
    define_storage_config(config)
    define_worker_config(config)
    define_runner_config(config)

    config.add_option(
        "debug",
        option_type=bool,
        default=False,
        help="Turn hypersearch into debug mode. Storage will be overridden to in-memory EphemeralDB.",
    )

    return config


def define_storage_config(config):
    """Create and define the fields of the storage configuration."""
    storage_config = Configuration()

    storage_config.add_option(
        "type", option_type=str, default="jobsdb", env_var="HYPERSEARCH_STORAGE_TYPE"
    )

    config.storage = storage_config

    define_database_config(config.storage)


def define_database_config(config):
    """Create and define the fields of the database configuration."""
    database_config = Configuration()

    database_config.add_option(
        "name",
        option_type=str,
        default="hypersearch",
        env_var="HYPERSEARCH_DB_NAME",
        help="Name of the database.",
    )
    database_config.add_option(
        "type",
        option_type=str,
        default="PickledDB",
        env_var="HYPERSEARCH_DB_TYPE",
        help=(
            "Type of database. Builtin backends are ``mongodb``, "
            "``pickleddb`` and ``ephemeraldb``."
        ),
    )
    database_config.add_option(
        "host",
        option_type=str,
        default="",
        env_var="HYPERSEARCH_DB_ADDRESS",
        help="URI for ``mongodb``, or file path for ``pickleddb``.",
    )
    database_config.add_option(
        "port",
        option_type=int,
        default=27017,
        env_var="HYPERSEARCH_DB_PORT",
        help="Port address for ``mongodb``.",
    )

    config.database = database_config


def define_worker_config(config):
    """Create and define the fields of the worker configuration."""
    worker_config = Configuration()

    worker_config.add_option(
        "batch_size",
        option_type=int,
        default=10,
        env_var="HYPERSEARCH_BATCH_SIZE",
        help="Number of candidates requested from the search strategy at once.",
    )

    worker_config.add_option(
        "poll_interval",
        option_type=float,
        default=0.0,
        env_var="HYPERSEARCH_POLL_INTERVAL",
        help=(
            "Number of seconds to wait before asking the strategy again when it "
            "returned no candidate without being exhausted."
        ),
    )

    worker_config.add_option(
        "checkpoint_dir",
        option_type=str,
        default=os.path.join(DIRS.user_data_dir, "checkpoints"),
        env_var="HYPERSEARCH_CHECKPOINT_DIR",
        help="Directory where the checkpoints of best models are saved.",
    )

    worker_config.add_option(
        "output_dir",
        option_type=str,
        default=os.path.join(DIRS.user_data_dir, "predictions"),
        env_var="HYPERSEARCH_OUTPUT_DIR",
        help="Directory where the predictions of best models are written.",
    )

    worker_config.add_option(
        "client",
        option_type=str,
        default=socket.gethostname(),
        env_var="HYPERSEARCH_CLIENT",
        help="Name of the client inserting jobs, used in checkpoint identifiers.",
    )

    config.worker = worker_config


def define_runner_config(config):
    """Create and define the fields of the model runner configuration."""
    runner_config = Configuration()

    runner_config.add_option(
        "model_update_period",
        option_type=int,
        default=100,
        help="Number of records between two writes of the model results.",
    )
    runner_config.add_option(
        "job_results_period",
        option_type=int,
        default=100,
        help="Number of records between two attempts to publish the model as best.",
    )
    runner_config.add_option(
        "first_job_results_period",
        option_type=int,
        default=2,
        help="Number of records before the first attempt to publish the model as best.",
    )
    runner_config.add_option(
        "cancel_check_period",
        option_type=int,
        default=50,
        help="Number of records between two checks of the job and model stop requests.",
    )
    runner_config.add_option(
        "maturity_check_period",
        option_type=int,
        default=10,
        help="Number of records between two maturity checks.",
    )
    runner_config.add_option(
        "enable_maturity",
        option_type=bool,
        default=True,
        env_var="HYPERSEARCH_ENABLE_MATURITY",
        help="Stop models whose optimized metric leveled off, unless they are the best.",
    )
    runner_config.add_option(
        "maturity_num_points",
        option_type=int,
        default=10,
        help="Number of metric samples used to decide if a model matured.",
    )
    runner_config.add_option(
        "maturity_max_change",
        option_type=float,
        default=0.005,
        help="Maximum percent change of the metric over the window for a mature model.",
    )
    runner_config.add_option(
        "best_model_min_records",
        option_type=int,
        default=1000,
        help="Minimum number of records processed before checking maturity.",
    )

    config.runner = runner_config


def build_config():
    """Define the config and fill it based on global configuration files."""
    config = define_config()
    for file_path in DEF_CONFIG_FILES_PATHS:
        if not os.path.exists(file_path):
            logger.debug("Config file not found: %s", file_path)
            continue

        config.load_yaml(file_path)

    return config


config = build_config()
