from functools import lru_cache
from typing import Literal
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "RecommendationService"
    DEBUG: bool = False
    GIT_SHA: str = "unknown"

    # Mongo
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "recommendation-service"
    MONGO_TLS: bool = False                    # Atlas SRV URIs need TLS + certifi CA bundle

    # Redis (optional: read-through cache + generation locks)
    REDIS_URL: str = ""

    # Kafka (optional: empty disables publishing/consuming)
    KAFKA_BOOTSTRAP_SERVERS: str = ""
    KAFKA_CLIENT_ID: str = "recommendation-service"
    KAFKA_CONSUMER_GROUP: str = "recommendation-service"
    KAFKA_CONSUMER_ENABLED: bool = False
    topic_recommendation_created: str = "recommendation.created"
    topic_user_activity: str = "user.activity"
    topic_user_preferences_updated: str = "user.preferences.updated"
    kafka_send_timeout_s: int = 5

    # Recommendation engine
    max_recommendations: int = 5               # per user, after filtering
    expiry_days: int = 7                       # validity window of a generated set
    minimum_score: float = 0.3                 # scores below are dropped (0-1)
    activity_history_limit: int = 50           # most recent activities considered
    weight_purchase: float = 1.0
    weight_cart: float = 0.8
    weight_wishlist: float = 0.7
    weight_view: float = 0.5
    weight_search: float = 0.3
    time_decay_factor: float = 0.9             # per day, applied to similarity signals

    # Cache / locks
    recommendation_cache_ttl: int = 5 * 60     # 5 minutes
    recommendation_cache_prefix: str = "reco"  # redis key namespace
    generation_lock_ttl: int = 30              # seconds; dogpile protection per user
    generation_lock_wait_s: int = 10

    # Batch
    batch_concurrency: int = 4
    batch_timeout_s: int = 3600
    BATCH_SCHEDULER_ENABLED: bool = False
    batch_schedule_hour: int = 1               # UTC, daily (cron "0 1 * * *")

    # Dev only
    SEED_MOCK_DATA: bool = False

    # API
    api_prefix: str = "/api/recommendations"

    # pydantic-settings config will be set dynamically in the factory below
    model_config = SettingsConfigDict(env_file=None, case_sensitive=True)

    @property
    def activity_weights(self) -> dict[str, float]:
        return {
            "purchase": self.weight_purchase,
            "cart": self.weight_cart,
            "wishlist": self.weight_wishlist,
            "view": self.weight_view,
            "search": self.weight_search,
        }

@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
