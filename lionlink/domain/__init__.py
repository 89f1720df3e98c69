"""
Machine-level objects built on top of the session and transport layers.

Exposes ``MachineController``, the inactivity tracker and a factory that
wires a controller from ``Settings``.
"""
from lionlink.domain.activity import ActivityMonitor
from lionlink.domain.factory import create_controller
from lionlink.domain.machine import MachineController

__all__ = ["ActivityMonitor", "MachineController", "create_controller"]
