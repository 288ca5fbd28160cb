"""Unit test for memory pipeline configuration."""

from adaptive_memory.config.settings import (
    MemoryConfig,
    MemoryRetrieval,
    SummaryTriggerConfig,
    TriggerStrategy,
)


def test_default_settings():
    """Test that default settings are correctly configured."""
    config = MemoryConfig()
    assert config.enable_user_memories is True
    assert config.enable_session_summary is False
    assert config.retrieval == MemoryRetrieval.LAST_N
    assert config.memory_limit == 30
    assert config.async_processing is True
    assert config.async_worker_pool_size == 5
    assert config.async_task_timeout == 30.0
    assert config.message_history_limit == 1000
    assert config.table_prefix == ""


def test_trigger_defaults():
    """Smart strategy with threshold 10 and a ten minute interval."""
    trigger = MemoryConfig().summary_trigger
    assert trigger.strategy == TriggerStrategy.SMART
    assert trigger.message_threshold == 10
    assert trigger.min_interval == 600.0
    assert trigger.burst_multiplier == 2
    assert trigger.burst_min_gap == 30.0
    assert trigger.idle_override == 3600.0


def test_non_positive_values_fall_back_to_defaults():
    config = MemoryConfig(memory_limit=0, async_worker_pool_size=-3)
    assert config.memory_limit == 30
    assert config.async_worker_pool_size == 5

    trigger = SummaryTriggerConfig(message_threshold=0, min_interval=-1)
    assert trigger.message_threshold == 10
    assert trigger.min_interval == 600.0


def test_queue_capacity_defaults_to_twice_pool_size():
    assert MemoryConfig(async_worker_pool_size=3).queue_capacity == 6
    assert MemoryConfig(async_worker_pool_size=3, async_queue_capacity=50).queue_capacity == 50
    assert MemoryConfig(async_queue_capacity=0).queue_capacity == 10


def test_strategy_parsed_from_string():
    config = MemoryConfig(summary_trigger={"strategy": "by_time", "min_interval": 60})
    assert config.summary_trigger.strategy == TriggerStrategy.BY_TIME
    assert config.summary_trigger.min_interval == 60.0


def test_configs_do_not_share_trigger_settings():
    a = MemoryConfig()
    b = MemoryConfig()
    a.summary_trigger.message_threshold = 3
    assert b.summary_trigger.message_threshold == 10
