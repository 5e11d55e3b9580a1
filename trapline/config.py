"""TrapLine — application configuration.

Loads .env variables into a typed config object.
Validates values on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


SMC_STRATEGY = "smc"
_STRATEGIES = (
    SMC_STRATEGY,
    "standard",
    "agro",
    "atr",
    "atr_agro",
    "atr_partial_1",
    "atr_partial_2",
)
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    symbol: str = "BTCUSDT"
    interval: str = "15m"
    history_target: int = 30000
    limit_per_request: int = 1000
    sensitivity: float = 0.0001
    risk_reward: float = 2.0
    fractal_strength: int = 5
    angle_filter: bool = True
    angle_max: float = 20.0
    tolerance: float = 1.0
    strict_mode: bool = True
    show_history: bool = True
    strategy: str = "standard"  # "smc" or a liquidity-trap mode
    use_volume_analysis: bool = False
    initial_balance: float = 10_000.0
    include_fees: bool = False
    fee_maker: float = 0.1
    fee_taker: float = 0.1
    reg_period: int = 200
    reg_std_mult: float = 2.0
    poll_interval_seconds: float = 5.0
    binance_base_url: str = "https://api.binance.com"
    log_level: str = "INFO"
    api_port: int = 8080

    @property
    def max_bars(self) -> int:
        """Live window cap: the history target plus a 1000-bar margin."""
        return self.history_target + 1000


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_number(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def _validate(cfg: Config) -> None:
    if cfg.strategy not in _STRATEGIES:
        raise ValueError(
            f"TRAPLINE_STRATEGY must be one of {', '.join(_STRATEGIES)}, "
            f"got '{cfg.strategy}'"
        )
    positive = {
        "TRAPLINE_HISTORY_TARGET": cfg.history_target,
        "TRAPLINE_LIMIT_PER_REQUEST": cfg.limit_per_request,
        "TRAPLINE_RISK_REWARD": cfg.risk_reward,
        "TRAPLINE_FRACTAL_STRENGTH": cfg.fractal_strength,
        "TRAPLINE_INITIAL_BALANCE": cfg.initial_balance,
        "TRAPLINE_REG_PERIOD": cfg.reg_period,
        "TRAPLINE_POLL_INTERVAL_SECONDS": cfg.poll_interval_seconds,
    }
    for name, value in positive.items():
        if value <= 0:
            raise ValueError(f"{name} must be positive, got {value}")
    non_negative = {
        "TRAPLINE_SENSITIVITY": cfg.sensitivity,
        "TRAPLINE_TOLERANCE": cfg.tolerance,
        "TRAPLINE_FEE_MAKER": cfg.fee_maker,
        "TRAPLINE_FEE_TAKER": cfg.fee_taker,
        "TRAPLINE_REG_STD_MULT": cfg.reg_std_mult,
    }
    for name, value in non_negative.items():
        if value < 0:
            raise ValueError(f"{name} must not be negative, got {value}")


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable is optional.  Raises ``ValueError`` with a message
    naming the variable when a value is malformed or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    cfg = Config(
        symbol=os.environ.get("TRAPLINE_SYMBOL", "BTCUSDT").upper(),
        interval=os.environ.get("TRAPLINE_INTERVAL", "15m"),
        history_target=_env_number("TRAPLINE_HISTORY_TARGET", 30000, int),
        limit_per_request=_env_number("TRAPLINE_LIMIT_PER_REQUEST", 1000, int),
        sensitivity=_env_number("TRAPLINE_SENSITIVITY", 0.0001, float),
        risk_reward=_env_number("TRAPLINE_RISK_REWARD", 2.0, float),
        fractal_strength=_env_number("TRAPLINE_FRACTAL_STRENGTH", 5, int),
        angle_filter=_env_bool("TRAPLINE_ANGLE_FILTER", True),
        angle_max=_env_number("TRAPLINE_ANGLE_MAX", 20.0, float),
        tolerance=_env_number("TRAPLINE_TOLERANCE", 1.0, float),
        strict_mode=_env_bool("TRAPLINE_STRICT_MODE", True),
        show_history=_env_bool("TRAPLINE_SHOW_HISTORY", True),
        strategy=os.environ.get("TRAPLINE_STRATEGY", "standard").lower(),
        use_volume_analysis=_env_bool("TRAPLINE_USE_VOLUME_ANALYSIS", False),
        initial_balance=_env_number("TRAPLINE_INITIAL_BALANCE", 10_000.0, float),
        include_fees=_env_bool("TRAPLINE_INCLUDE_FEES", False),
        fee_maker=_env_number("TRAPLINE_FEE_MAKER", 0.1, float),
        fee_taker=_env_number("TRAPLINE_FEE_TAKER", 0.1, float),
        reg_period=_env_number("TRAPLINE_REG_PERIOD", 200, int),
        reg_std_mult=_env_number("TRAPLINE_REG_STD_MULT", 2.0, float),
        poll_interval_seconds=_env_number("TRAPLINE_POLL_INTERVAL_SECONDS", 5.0, float),
        binance_base_url=os.environ.get(
            "TRAPLINE_BINANCE_BASE_URL", "https://api.binance.com",
        ),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_env_number("TRAPLINE_API_PORT", 8080, int),
    )
    _validate(cfg)
    return cfg
