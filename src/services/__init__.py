"""Services for the code runner.

- renderer.py: Output rendering for chat messages
- interfaces.py: ContainerEngine and ChatPlatform protocols
- container/: Docker container engine
- sandbox/: Per-user sandbox store
- execution/: Compile-then-run pipeline and source templates
- dispatcher.py: Chat command parsing and routing
"""
