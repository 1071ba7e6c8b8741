"""
Configuration for LinkGraph.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration (entity and concept classification)."""

    provider: str = "openai"  # openai, ollama
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = 0.1
    max_tokens: int = 1000
    timeout: float = 120.0


class StoreConfig(BaseModel):
    """SQLite graph store configuration."""

    db_path: str = "data/linkgraph.db"
    busy_timeout: float = 30.0


class CacheConfig(BaseModel):
    """Tiered cache configuration. TTLs are in seconds, one per namespace."""

    backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "graph:"
    similar_ttl: int = 1800
    entities_ttl: int = 3600
    concepts_ttl: int = 3600
    stats_ttl: int = 600

    def ttls(self) -> dict[str, int]:
        """Namespace -> TTL mapping."""
        return {
            "similar": self.similar_ttl,
            "entities": self.entities_ttl,
            "concepts": self.concepts_ttl,
            "stats": self.stats_ttl,
        }


class PipelineConfig(BaseModel):
    """Job pipeline configuration."""

    concurrency: int = Field(default=3, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    backoff_delay: float = 2.0
    entity_lease_duration: float = 300.0
    concept_lease_duration: float = 300.0
    similarity_lease_duration: float = 120.0
    lease_renew_interval: float = 30.0
    poll_interval: float = 1.0
    job_timeout: float | None = 600.0


class SimilarityConfig(BaseModel):
    """Hybrid similarity scoring configuration."""

    threshold: float = Field(default=0.65, ge=0.0, le=1.0)
    limit: int = 20
    vector_weight: float = 0.7
    tag_weight: float = 0.2
    temporal_weight: float = 0.05
    domain_weight: float = 0.05
    temporal_decay_days: float = 30.0


class ExtractionConfig(BaseModel):
    """Extraction agent configuration."""

    max_content_chars: int = 4000
    entity_confidence: float = 0.85
    default_concept_relevance: float = 0.7


class ClusterConfig(BaseModel):
    """Cluster generation configuration."""

    min_cluster_size: int = Field(default=3, ge=1)
    max_clusters: int = Field(default=10, ge=1)
    random_state: int = 42
    temperature: float = 0.7
    max_tokens: int = 200


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    similarity: SimilarityConfig = Field(default_factory=SimilarityConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    clustering: ClusterConfig = Field(default_factory=ClusterConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in working directory)

        Returns:
            Config instance

        Environment variables:
            LINKGRAPH_LLM_PROVIDER: LLM provider (openai, ollama)
            LINKGRAPH_LLM_MODEL: LLM model name
            LINKGRAPH_LLM_BASE_URL: LLM base URL
            LINKGRAPH_LLM_API_KEY: LLM API key (for OpenAI)
            LINKGRAPH_DB_PATH: SQLite database path
            LINKGRAPH_CACHE_BACKEND: Cache backend (memory, redis)
            LINKGRAPH_REDIS_URL: Redis URL for the redis cache backend
            LINKGRAPH_CACHE_SIMILAR_TTL / _ENTITIES_TTL / _CONCEPTS_TTL / _STATS_TTL
            LINKGRAPH_WORKER_CONCURRENCY: Workers per job family
            LINKGRAPH_JOB_MAX_ATTEMPTS: Attempts before a job is marked failed
            LINKGRAPH_JOB_TIMEOUT: Seconds a handler may run before the attempt fails
            LINKGRAPH_SIMILARITY_THRESHOLD: Minimum hybrid similarity score
            LINKGRAPH_CLUSTER_MIN_SIZE: Smallest cluster kept by cluster generation
            LINKGRAPH_CLUSTER_MAX: Upper bound on clusters per generation run
        """
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None or value == "":
                return default
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        return cls(
            llm=LLMConfig(
                provider=get_env("LINKGRAPH_LLM_PROVIDER", "openai"),
                model=get_env("LINKGRAPH_LLM_MODEL", "gpt-4o-mini"),
                base_url=get_env("LINKGRAPH_LLM_BASE_URL"),
                api_key=get_env("LINKGRAPH_LLM_API_KEY"),
                temperature=get_env("LINKGRAPH_LLM_TEMPERATURE", 0.1),
                max_tokens=get_env("LINKGRAPH_LLM_MAX_TOKENS", 1000),
                timeout=get_env("LINKGRAPH_LLM_TIMEOUT", 120.0),
            ),
            store=StoreConfig(
                db_path=get_env("LINKGRAPH_DB_PATH", "data/linkgraph.db"),
                busy_timeout=get_env("LINKGRAPH_DB_BUSY_TIMEOUT", 30.0),
            ),
            cache=CacheConfig(
                backend=get_env("LINKGRAPH_CACHE_BACKEND", "memory"),
                redis_url=get_env("LINKGRAPH_REDIS_URL", "redis://localhost:6379/0"),
                key_prefix=get_env("LINKGRAPH_CACHE_PREFIX", "graph:"),
                similar_ttl=get_env("LINKGRAPH_CACHE_SIMILAR_TTL", 1800),
                entities_ttl=get_env("LINKGRAPH_CACHE_ENTITIES_TTL", 3600),
                concepts_ttl=get_env("LINKGRAPH_CACHE_CONCEPTS_TTL", 3600),
                stats_ttl=get_env("LINKGRAPH_CACHE_STATS_TTL", 600),
            ),
            pipeline=PipelineConfig(
                concurrency=get_env("LINKGRAPH_WORKER_CONCURRENCY", 3),
                max_attempts=get_env("LINKGRAPH_JOB_MAX_ATTEMPTS", 3),
                backoff_delay=get_env("LINKGRAPH_JOB_BACKOFF_DELAY", 2.0),
                lease_renew_interval=get_env("LINKGRAPH_LEASE_RENEW_INTERVAL", 30.0),
                poll_interval=get_env("LINKGRAPH_POLL_INTERVAL", 1.0),
                job_timeout=get_env("LINKGRAPH_JOB_TIMEOUT", 600.0),
            ),
            similarity=SimilarityConfig(
                threshold=get_env("LINKGRAPH_SIMILARITY_THRESHOLD", 0.65),
                limit=get_env("LINKGRAPH_SIMILARITY_LIMIT", 20),
            ),
            clustering=ClusterConfig(
                min_cluster_size=get_env("LINKGRAPH_CLUSTER_MIN_SIZE", 3),
                max_clusters=get_env("LINKGRAPH_CLUSTER_MAX", 10),
            ),
            logging=LoggingConfig(
                level=get_env("LINKGRAPH_LOG_LEVEL", "INFO"),
                log_to_file=get_env("LINKGRAPH_LOG_TO_FILE", False),
                log_dir=get_env("LINKGRAPH_LOG_DIR", "logs"),
                serialize=get_env("LINKGRAPH_LOG_SERIALIZE", True),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        A section is taken from the environment only when it differs from the
        defaults, so an unset environment never masks YAML values.
        """
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        env_config = cls.from_env(env_file=env_file)
        default = cls()

        final_dict = {**config_dict}
        for section in ("llm", "store", "cache", "pipeline", "similarity", "clustering", "logging"):
            env_section = getattr(env_config, section)
            if env_section != getattr(default, section):
                final_dict[section] = env_section.model_dump()

        return cls(**final_dict) if final_dict else env_config
