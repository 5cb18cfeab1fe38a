"""
Autobuy - periodically invest cash into a DEGIRO portfolio toward target ratios.

Usage:
    from autobuy import Buyer, DegiroBroker, EnvSettings, load_configuration

    settings = EnvSettings()
    configuration = load_configuration(settings.config_file)
    broker = DegiroBroker.from_settings(settings)
    report = await Buyer(broker, configuration).run()
"""

from autobuy.broker import DegiroBroker
from autobuy.buyer import Buyer, execute_orders
from autobuy.config import Configuration, EnvSettings, load_configuration
from autobuy.exceptions import (
    AllocationInfeasibleError,
    AutobuyError,
    BrokerError,
    ConfigurationError,
    DataUnavailableError,
    InsufficientCashError,
    LoginError,
    OrderPlacementError,
)
from autobuy.planner import plan_orders

__all__ = [
    "Buyer",
    "DegiroBroker",
    "Configuration",
    "EnvSettings",
    "load_configuration",
    "execute_orders",
    "plan_orders",
    # Errors
    "AutobuyError",
    "AllocationInfeasibleError",
    "BrokerError",
    "ConfigurationError",
    "DataUnavailableError",
    "InsufficientCashError",
    "LoginError",
    "OrderPlacementError",
]
