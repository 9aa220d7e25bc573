"""
核心配置模块
"""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """系统配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MACROFLOW_",
        case_sensitive=False,
        extra="ignore",
    )

    # 执行
    step_delay_ms: int = Field(default=300, ge=0)
    image_match_threshold: float = Field(default=0.85, ge=0.0, le=1.0)

    # 设备
    adb_path: str = Field(default="adb")
    device_addr: str = Field(default="")

    # 场景文件
    scenario_dir: str = Field(default="./scenarios")

    # 线程池 (<= 0 表示自动)
    io_thread_pool_size: int = Field(default=0)

    # 日志
    log_level: str = Field(default="INFO")
    log_path: str = Field(default="./logs")
    log_retention_days: int = Field(default=3)
    log_console_enabled: bool = Field(default=True)
    log_file_enabled: bool = Field(default=True)
    log_rotation: str = Field(default="00:00")


# 全局配置实例
settings = Settings()
