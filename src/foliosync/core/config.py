"""
FolioSync 配置管理

支持 YAML 配置文件和环境变量覆盖。
"""

import os
from dataclasses import dataclass, field, fields as dataclass_fields
from typing import Dict, List, Optional
from pathlib import Path
import yaml


@dataclass
class LedgerConfig:
    """远端账本 (Ghostfolio) 连接配置"""
    base_url: str = ""
    access_token: str = ""

    # 认证令牌缓存 (秒)
    token_ttl: float = 60.0

    # 重试配置
    max_retries: int = 5
    retry_pause: float = 1.0

    # 熔断配置
    breaker_threshold: int = 2
    breaker_cooldown: float = 30.0

    request_timeout: float = 30.0

    def __post_init__(self):
        """去掉 URL 尾部的斜杠"""
        self.base_url = self.base_url.rstrip("/")


@dataclass
class AccountConfig:
    """单个账户的同步配置"""
    name: str
    account_id: str = ""
    # 已规范化交易文件 (*.jsonl) 或目录
    sources: List[str] = field(default_factory=list)


@dataclass
class SyncConfig:
    """同步调度配置"""
    interval_minutes: float = 60.0
    dry_run: bool = False


@dataclass
class MetricsConfig:
    """Prometheus 指标服务配置"""
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class Config:
    """FolioSync 主配置"""
    ledger: LedgerConfig = field(default_factory=LedgerConfig)

    # 账户配置
    accounts: Dict[str, AccountConfig] = field(default_factory=dict)

    sync: SyncConfig = field(default_factory=SyncConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    # 日志配置
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """从 YAML 文件加载配置"""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        return cls._from_dict(data or {})

    @classmethod
    def from_env(cls) -> "Config":
        """从环境变量加载配置"""
        config = cls()

        if base_url := os.getenv("GHOSTFOLIO_URL"):
            config.ledger.base_url = base_url.rstrip("/")

        if access_token := os.getenv("GHOSTFOLIO_ACCESTOKEN"):
            config.ledger.access_token = access_token

        if interval := os.getenv("FOLIOSYNC_INTERVAL_MINUTES"):
            config.sync.interval_minutes = float(interval)

        if log_level := os.getenv("LOG_LEVEL"):
            config.log_level = log_level

        return config

    @classmethod
    def _from_dict(cls, data: Dict) -> "Config":
        """从字典创建配置"""
        config = cls()

        def _filter_kwargs(dc_cls, raw: dict) -> dict:
            allowed = {f.name for f in dataclass_fields(dc_cls) if f.init}
            return {k: v for k, v in raw.items() if k in allowed}

        if ledger_data := data.get("ledger"):
            config.ledger = LedgerConfig(**_filter_kwargs(LedgerConfig, ledger_data))

        # 解析账户配置
        for name, acc_data in (data.get("accounts") or {}).items():
            if not isinstance(acc_data, dict):
                continue
            if acc_data.get("enabled", True) is False:
                continue
            kwargs = _filter_kwargs(AccountConfig, acc_data)
            kwargs.pop("name", None)
            kwargs.setdefault("account_id", name)
            if isinstance(kwargs.get("sources"), str):
                kwargs["sources"] = [kwargs["sources"]]
            config.accounts[name] = AccountConfig(name=name, **kwargs)

        if sync_data := data.get("sync"):
            config.sync = SyncConfig(**_filter_kwargs(SyncConfig, sync_data))

        if metrics_data := data.get("metrics"):
            config.metrics = MetricsConfig(**_filter_kwargs(MetricsConfig, metrics_data))

        # 日志配置
        config.log_level = data.get("log_level", "INFO")

        return config

    def get_account(self, name: str) -> Optional[AccountConfig]:
        """获取账户配置 (按名称或远端账户 ID)"""
        if name in self.accounts:
            return self.accounts[name]
        for account in self.accounts.values():
            if account.account_id == name:
                return account
        return None


def load_config(config_path: Optional[str] = None) -> Config:
    """
    加载配置

    优先级: 环境变量 > 配置文件 > 默认值

    Raises:
        FileNotFoundError: 显式指定的配置文件不存在
    """
    config = Config()
    resolved_path = resolve_config_path(config_path)
    if resolved_path is not None:
        config = Config.from_yaml(str(resolved_path))

    # 环境变量覆盖
    env_config = Config.from_env()

    if os.getenv("GHOSTFOLIO_URL"):
        config.ledger.base_url = env_config.ledger.base_url
    if os.getenv("GHOSTFOLIO_ACCESTOKEN"):
        config.ledger.access_token = env_config.ledger.access_token
    if os.getenv("FOLIOSYNC_INTERVAL_MINUTES"):
        config.sync.interval_minutes = env_config.sync.interval_minutes
    if os.getenv("LOG_LEVEL"):
        config.log_level = env_config.log_level

    return config


def resolve_config_path(config_path: Optional[str] = None) -> Optional[Path]:
    """
    Resolve config file path robustly (supports running from outside project root).

    Priority:
      1) env FOLIOSYNC_CONFIG
      2) given config_path (absolute/relative)
      3) cwd config/default.yaml
      4) project_root/config/default.yaml (relative to this module)

    An explicitly requested file (1 or 2) that does not exist raises
    FileNotFoundError instead of falling back to the defaults.
    """
    explicit: list[Path] = []

    env_path = os.getenv("FOLIOSYNC_CONFIG")
    if env_path:
        explicit.append(Path(env_path))

    if config_path:
        p = Path(config_path)
        explicit.append(p)
        if not p.is_absolute():
            project_root = Path(__file__).resolve().parents[3]
            explicit.append(project_root / p)

    if explicit:
        for p in explicit:
            if p.exists():
                return p
        raise FileNotFoundError(f"Config file not found: {env_path or config_path}")

    candidates = [
        Path("config/default.yaml"),
        Path(__file__).resolve().parents[3] / "config" / "default.yaml",
    ]

    for p in candidates:
        try:
            if p.exists():
                return p
        except OSError:
            continue

    return None
