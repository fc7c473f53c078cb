"""Configuration module for pubsub-lite.

This module provides the immutable option objects accepted by the publisher,
the consumer and the Redis idempotency store. Every object is a frozen
pydantic model: build a new one to change a setting.

Example:
    Publisher with defaults, retry tuning and hooks:

        >>> options = PublisherOptions(
        ...     attributes_defaults={"source": "billing"},
        ...     ordering_key_selector=lambda data: data.get("customer_id"),
        ...     retry=RetryOptions(max_attempts=3, initial_delay_ms=50),
        ... )
        >>> options.retry.max_attempts
        3

    Consumer with Redis-backed idempotency:

        >>> options = ConsumerOptions(
        ...     idempotency_enabled=True,
        ...     redis=RedisOptions(url="redis://cache:6379/0"),
        ...     idempotency_ttl_ms=3_600_000,
        ... )

    Loading retry settings from the environment:

        >>> import os
        >>> os.environ["PUBSUB_LITE_RETRY_MAX_ATTEMPTS"] = "7"
        >>> RetryOptions.from_env().max_attempts
        7
"""

import os
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class Defaults:
    """Library-wide default values."""

    REDIS_KEY_PREFIX = "pubsubx:idemp:"
    IDEMPOTENCY_TTL_MS = 6 * 60 * 60 * 1000
    CLEANUP_INTERVAL_MS = 60 * 1000
    ACK_DEADLINE_SECONDS = 600
    FLOW_CONTROL_MAX_MESSAGES = 1000
    FLOW_CONTROL_MAX_BYTES = 10 * 1024 * 1024
    BATCH_MAX_MESSAGES = 100
    BATCH_MAX_BYTES = 1024 * 1024


def _read_env(prefix: str, field_types: dict[str, type]) -> dict[str, Any]:
    config_dict: dict[str, Any] = {}
    for field_name, field_type in field_types.items():
        env_value = os.environ.get(f"{prefix}{field_name.upper()}")
        if env_value is None:
            continue
        if field_type is int:
            config_dict[field_name] = int(env_value)
        elif field_type is float:
            config_dict[field_name] = float(env_value)
        elif field_type is bool:
            config_dict[field_name] = env_value.strip().lower() in ("1", "true", "yes", "on")
        else:
            config_dict[field_name] = env_value
    return config_dict


class RetryOptions(BaseModel):
    """Backoff policy for the publish path.

    The delay before retry ``attempt`` (0-based) is
    ``min(max_delay_ms, initial_delay_ms * factor ** attempt) + U(0, initial_delay_ms)``.

    Attributes:
        initial_delay_ms: Base delay and jitter ceiling in milliseconds.
        max_delay_ms: Cap on the exponential part of the delay.
        factor: Exponential growth factor.
        max_attempts: Total transport publish calls allowed per publish().
        is_retryable: Optional predicate; when it returns False for an error
            the publish fails immediately. None retries every error.
    """

    initial_delay_ms: int = Field(default=100, description="Base delay in milliseconds")
    max_delay_ms: int = Field(default=10000, description="Cap on the exponential delay")
    factor: float = Field(default=2.0, description="Exponential growth factor")
    max_attempts: int = Field(default=5, description="Maximum transport publish calls")
    is_retryable: Callable[[Exception], bool] | None = Field(
        default=None,
        description="Predicate deciding whether an error is retried (None = always)",
    )

    model_config = {"frozen": True}

    @field_validator("initial_delay_ms", "max_delay_ms")
    @classmethod
    def validate_delay(cls, v: int) -> int:
        """Delays must be non-negative."""
        if v < 0:
            raise ValueError(f"delay must be >= 0, got {v}")
        return v

    @field_validator("factor")
    @classmethod
    def validate_factor(cls, v: float) -> float:
        """The growth factor must not shrink the delay."""
        if v < 1:
            raise ValueError(f"factor must be >= 1, got {v}")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        """At least one attempt is always made."""
        if v < 1:
            raise ValueError(f"max_attempts must be >= 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> "RetryOptions":
        """Ensure the cap is not below the base delay."""
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"initial_delay_ms ({self.initial_delay_ms})"
            )
        return self

    @classmethod
    def from_env(cls, prefix: str = "PUBSUB_LITE_RETRY_") -> "RetryOptions":
        """Create retry options from environment variables.

        Variable names are the uppercase field names with the prefix, e.g.
        ``PUBSUB_LITE_RETRY_MAX_ATTEMPTS``. Missing variables keep defaults.

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            RetryOptions populated from the environment.
        """
        return cls(
            **_read_env(
                prefix,
                {
                    "initial_delay_ms": int,
                    "max_delay_ms": int,
                    "factor": float,
                    "max_attempts": int,
                },
            )
        )

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "RetryOptions":
        """Create retry options from a dictionary."""
        return cls(**config_dict)


class BatchingOptions(BaseModel):
    """Transport-level batch buffer thresholds, passed through unchanged."""

    max_messages: int = Field(default=Defaults.BATCH_MAX_MESSAGES, ge=1)
    max_bytes: int = Field(default=Defaults.BATCH_MAX_BYTES, ge=1)
    max_latency_seconds: float = Field(default=0.01, ge=0)

    model_config = {"frozen": True}


class FlowControlOptions(BaseModel):
    """Subscriber flow control limits, passed through unchanged."""

    max_messages: int = Field(default=Defaults.FLOW_CONTROL_MAX_MESSAGES, ge=1)
    max_bytes: int = Field(default=Defaults.FLOW_CONTROL_MAX_BYTES, ge=1)

    model_config = {"frozen": True}


class PublisherHooks(BaseModel):
    """Observability callbacks around a publish() call.

    Each hook may be a plain function or a coroutine function. Failures are
    logged and never change the publish outcome or the retry count.

    Attributes:
        on_publish_start: ``(payload, attributes)`` before the first attempt.
        on_publish_success: ``(message_id, payload)`` after a successful attempt.
        on_publish_error: ``(error, payload, attempt)`` after each failed attempt.
        on_publish_retry: ``(error, payload, attempt, delay_ms)`` before each wait.
        on_publish_failure: ``(error, payload, attempts)`` once attempts are exhausted.
    """

    on_publish_start: Callable[..., Any] | None = None
    on_publish_success: Callable[..., Any] | None = None
    on_publish_error: Callable[..., Any] | None = None
    on_publish_retry: Callable[..., Any] | None = None
    on_publish_failure: Callable[..., Any] | None = None

    model_config = {"frozen": True}


class PublisherOptions(BaseModel):
    """Configuration for a Publisher.

    Attributes:
        attributes_defaults: Attributes merged under call-site attributes.
        ordering_key_selector: ``payload -> str | None``; sets the transport
            ordering key. Exceptions propagate without any publish attempt.
        retry: Backoff policy for the publish call.
        batching: Transport batch thresholds (None keeps transport defaults).
        hooks: Observability callbacks.
    """

    attributes_defaults: dict[str, str] = Field(
        default_factory=dict,
        description="Attributes merged under call-site attributes",
    )
    ordering_key_selector: Callable[[Any], str | None] | None = Field(
        default=None,
        description="Derives the transport ordering key from the payload",
    )
    retry: RetryOptions = Field(default_factory=RetryOptions)
    batching: BatchingOptions | None = None
    hooks: PublisherHooks = Field(default_factory=PublisherHooks)

    model_config = {"frozen": True}


class ConsumerHooks(BaseModel):
    """Observability callbacks around the per-message pipeline.

    Each hook may be a plain function or a coroutine function. A failing hook
    is logged and never aborts the pipeline or changes the ack/nack decision.

    Attributes:
        on_message_received: ``(message)`` on arrival.
        on_idempotency_check: ``(key, exists)`` after a completed store lookup.
        on_message_start: ``(message)`` right before the handler runs.
        on_message_success: ``(message, data)`` after the handler returns.
        on_message_error: ``(message, error)`` after the handler raises.
        on_message_ack: ``(message)`` after the pipeline acks.
        on_message_nack: ``(message)`` after the pipeline nacks.
    """

    on_message_received: Callable[..., Any] | None = None
    on_idempotency_check: Callable[..., Any] | None = None
    on_message_start: Callable[..., Any] | None = None
    on_message_success: Callable[..., Any] | None = None
    on_message_error: Callable[..., Any] | None = None
    on_message_ack: Callable[..., Any] | None = None
    on_message_nack: Callable[..., Any] | None = None

    model_config = {"frozen": True}


class RedisOptions(BaseModel):
    """Connection and keying options for the Redis idempotency store.

    Attributes:
        url: Connection URL; takes precedence over host/port/db/password.
        host: Redis host.
        port: Redis port.
        password: Redis password.
        db: Database number.
        key_prefix: Namespace prepended to every idempotency key.
        ttl_ms: Default record lifetime in milliseconds.
        client: Externally owned ``redis.asyncio.Redis``; never closed by the store.
        connect_timeout_ms: Socket connect timeout.
        command_timeout_ms: Per-command socket timeout.
        retry_on_failure: Retry commands on connection errors.
        max_retries: Retries used when retry_on_failure is set.
    """

    url: str | None = None
    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    password: str | None = None
    db: int = Field(default=0, ge=0)
    key_prefix: str = Defaults.REDIS_KEY_PREFIX
    ttl_ms: int = Field(default=Defaults.IDEMPOTENCY_TTL_MS, ge=1)
    client: Any = None
    connect_timeout_ms: int | None = Field(default=None, ge=1)
    command_timeout_ms: int | None = Field(default=None, ge=1)
    retry_on_failure: bool = False
    max_retries: int = Field(default=3, ge=0)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @classmethod
    def from_env(cls, prefix: str = "PUBSUB_LITE_REDIS_") -> "RedisOptions":
        """Create Redis options from environment variables.

        Example:
            >>> import os
            >>> os.environ["PUBSUB_LITE_REDIS_URL"] = "redis://cache:6379/2"
            >>> RedisOptions.from_env().url
            'redis://cache:6379/2'
        """
        return cls(
            **_read_env(
                prefix,
                {
                    "url": str,
                    "host": str,
                    "port": int,
                    "password": str,
                    "db": int,
                    "key_prefix": str,
                    "ttl_ms": int,
                    "connect_timeout_ms": int,
                    "command_timeout_ms": int,
                    "retry_on_failure": bool,
                    "max_retries": int,
                },
            )
        )


class ConsumerOptions(BaseModel):
    """Configuration for a Consumer.

    Attributes:
        idempotency_enabled: Gates the duplicate check before the handler.
        idempotency_store: Injected store; never closed by the consumer.
        redis: ``RedisOptions`` (or a dict of them) or a ``redis.asyncio.Redis``
            instance, used to build a Redis store when no store is injected.
        idempotency_key_selector: ``message -> str``; default is the message id.
        idempotency_ttl_ms: Record lifetime passed to ``set()``; None uses
            the store default.
        flow_control: Passed through to the transport.
        ack_deadline_seconds: Passed through to the transport.
        hooks: The seven pipeline hooks.
        auto_ack: Ack automatically after a successful handler.
        release_key_on_error: Delete the idempotency record when the handler
            fails so the redelivery is processed again.
    """

    idempotency_enabled: bool = False
    idempotency_store: Any = None
    redis: Any = None
    idempotency_key_selector: Callable[[Any], str] | None = None
    idempotency_ttl_ms: int | None = None
    flow_control: FlowControlOptions = Field(default_factory=FlowControlOptions)
    ack_deadline_seconds: int = Field(default=Defaults.ACK_DEADLINE_SECONDS, ge=10, le=600)
    hooks: ConsumerHooks = Field(default_factory=ConsumerHooks)
    auto_ack: bool = True
    release_key_on_error: bool = True

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("redis", mode="before")
    @classmethod
    def validate_redis(cls, v: Any) -> Any:
        """Accept a plain dict of Redis settings as ``RedisOptions``."""
        if isinstance(v, dict):
            return RedisOptions(**v)
        return v

    @field_validator("idempotency_ttl_ms")
    @classmethod
    def validate_idempotency_ttl_ms(cls, v: int | None) -> int | None:
        """Record lifetimes must be positive."""
        if v is not None and v < 1:
            raise ValueError(f"idempotency_ttl_ms must be >= 1, got {v}")
        return v
