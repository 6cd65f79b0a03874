from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    db_path: str = "data/scorebook.db"
    log_level: str = "INFO"

    # Rules applied to matches created without explicit rules
    default_total_overs: int = 20
    default_players_per_team: int = 11
    default_max_overs_per_bowler: int = 4

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
