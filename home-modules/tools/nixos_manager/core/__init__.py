"""Core engines: filesystem probe, swap engine, generation manager, command runner."""
