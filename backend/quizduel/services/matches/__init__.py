"""Match engine services: lifecycle, answers, settlement and the tick loop.

This package contains the domain logic imported by HTTP routes and the
background scheduler, keeping transport concerns separated from the
match state machine. Every state change is a conditional single-row
write keyed on the expected prior status.
"""
