"""
Pump Copilot: telemetry analytics and alerting for pump equipment.

Usage:
    from pump_copilot.config_helper import create_engine

    engine = create_engine(rules_file="rules.yaml")
    engine.sample_store.add_many(samples)
    report = engine.analyzer.analyze("PUMP-001", start, end)
"""

__version__ = "1.0.0"
