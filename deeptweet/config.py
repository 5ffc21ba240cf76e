from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenAI-compatible LLM endpoint (required for any model call)
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    default_model: str = "gpt-4o"
    query_model: str = "gpt-4o-mini"  # cheap model for search query refinement

    # Embeddings
    embedding_backend: str = "openai"  # openai | local
    embedding_model: str = "text-embedding-3-small"
    local_embed_model: str = "bge-small-en-v1.5"
    local_embed_batch_size: int = 32

    # Search provider
    search_provider: str = "serper"  # serper | tavily
    serper_api_key: str = ""
    tavily_api_key: str = ""
    search_max_results: int = 5
    search_domain_blocklist: str = "youtube.com,facebook.com,twitter.com,instagram.com"

    # Page fetching
    fetch_timeout_seconds: float = 10.0
    fetch_user_agent: str = "DeepTweetBot/1.0 (+https://example.local)"
    page_chunk_chars: int = 400
    page_max_chunks: int = 100

    # Research budget / concurrency
    max_topics: int = 3
    queue_concurrency: int = 1
    url_fanout: int = 2
    max_urls_per_topic: int = 4
    top_k_chunks: int = 3
    top_insights_per_topic: int = 3
    max_subtopics: int = 3
    subtopic_submit_delay_seconds: float = 0.5
    expansion_content_chars: int = 4000
    score_default_alarm_ratio: float = 0.5
    score_default_alarm_min_calls: int = 4

    # Output
    output_format: str = "thread"  # thread | blog
    output_dir: str = "output"
    prompts_path: str = ""  # override the bundled prompts.json

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def search_blocklist(self) -> list[str]:
        return [d.strip().lower() for d in self.search_domain_blocklist.split(",") if d.strip()]


settings = Settings()
