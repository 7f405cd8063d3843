"""Agent registry, workflow models, the orchestrator and the retrying runner.

Import from the submodules directly; ``mycontext.scheduling`` depends on
``orchestration.models`` so this package initialiser stays import-free.
"""
