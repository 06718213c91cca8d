"""Compiler driver provisioning and invocation."""
