"""全局配置管理

所有用户可配置项均通过 .env 文件设置，运行时自动加载到此处。

使用方式：
    1. 手动创建 .env 文件（参考下方字段，键名不区分大小写）
    2. 或直接通过环境变量覆盖，例如 ``DATABASE_URL=sqlite:///data/orders.db``
"""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据库 ==========
    database_url: str = "sqlite:///data/orders.db"
    db_busy_timeout: float = 15.0  # 存储层命令超时（秒），SQLite 为 busy timeout

    # ========== Web 平台配置 ==========
    web_host: str = "0.0.0.0"
    web_port: int = 3000
    web_username: str = "admin"
    web_password: str = "admin123"
    token_ttl_hours: int = 24
    protect_combination_updates: bool = False

    # ========== 文件上传 ==========
    upload_dir: str = "uploads"
    max_upload_size: int = 25 * 1024 * 1024

    # ========== 印刷选项矩阵 ==========
    default_combination_price: float = 0.10
    option_name_retries: int = 3
    atomic_option_expansion: bool = True
    matrix_repair_enabled: bool = True
    matrix_repair_time: str = "03:00"

    # ========== 订单 ==========
    order_number_start: int = 1001
    order_number_retries: int = 5
    enforce_status_transitions: bool = False

    # ========== 日志 ==========
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()
