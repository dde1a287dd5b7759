"""Application configuration using Pydantic settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # App Settings
    debug: bool = False
    log_level: str = "INFO"
    app_host: str = "0.0.0.0"
    app_port: int = 4400

    # ==========================================================================
    # Target site
    # ==========================================================================
    base_url: str = "https://www.swiggy.com/instamart"
    delivery_time_url: str = (
        "https://www.swiggy.com/instamart?entryId=1234&entryName=mainTileEntry4&v=1"
    )
    product_url_template: str = "https://www.swiggy.com/instamart/item/{product_id}"
    image_url_template: str = (
        "https://instamart-media-assets.swiggy.com/swiggy/image/upload/"
        "fl_lossy,f_auto,q_auto,h_544,w_504/{image_id}"
    )
    platform: str = "instamart"

    # Browser
    headless: bool = True
    navigation_timeout_ms: int = 30000
    element_timeout_ms: int = 5000  # wait-for-selector budget per optional element
    card_wait_timeout_ms: int = 15000  # first product card may take a while on cold sessions

    # Storage
    session_storage_path: str = "data/sessions"
    output_path: str = "data/output"
    debug_dump_path: str = "data/debug"
    debug_dumps_enabled: bool = True
    cleanup_debug_dumps: bool = True

    # ==========================================================================
    # Scroll progression
    # ==========================================================================
    scroll_max_seconds: float = 300.0  # 5 minutes hard ceiling
    scroll_step_px: int = 1200
    scroll_min_region_px: int = 300
    scroll_small_delta_px: int = 10
    scroll_stuck_threshold: int = 20
    scroll_ghost_limit: int = 40
    scroll_click_retries: int = 3
    scroll_poll_interval: float = 0.4
    scroll_settle_delay: float = 2.0
    scroll_error_backoff: float = 1.0

    # Network interception
    response_drain_timeout: float = 10.0

    # DOM card reading (API data has proven sufficient so far)
    dom_extraction_enabled: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
