"""
Shared Kernel Module
====================

Generic infrastructure shared by the escalation bounded context and the
worker entry point.

DO NOT add escalation business logic to the shared kernel.
"""
