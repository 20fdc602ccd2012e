"""winjet.

Single-node manager for a containerised Windows VM (``dockurr/windows``) that:
 - brings up the State, Docker and KVM backends independently
 - discovers existing containers derived from the managed image
 - reconciles one persisted service record against what it finds

All state is owned by a single message-driven control loop; I/O runs on a
worker pool and reports back through messages.
"""
