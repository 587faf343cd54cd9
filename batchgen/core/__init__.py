"""Core orchestration logic: state machine, cost, specs, merge, streaming, driver, poller."""
