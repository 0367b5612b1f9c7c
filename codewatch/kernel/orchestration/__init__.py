"""Analysis orchestration: engine execution, aggregation, crossover and events."""
