"""Example message handlers used by config/bus.yaml."""
