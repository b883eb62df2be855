from analytics_engine.adapters.memory_records import InMemoryRecordSource

__all__ = ["InMemoryRecordSource"]
