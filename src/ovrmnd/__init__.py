"""ovrmnd -- Call declaratively described HTTP and GraphQL APIs by name.

Each API is described once in a YAML *service file*: base URL,
authentication, named endpoints with path templates, cache TTLs and response
transforms, plus aliases with pre-filled arguments.  Operations are then
invoked as ``service.endpoint``::

    ovrmnd call github.getRepo owner=octocat repo=hello-world
    ovrmnd call github.getRepo --batch-json '[{"repo": "a"}, {"repo": "b"}]'

GET responses are cached on disk with a TTL and every response can be
reshaped by an extract/rename pipeline before it is printed.

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration and service file discovery.
    params: Parameter classification into path, query, header and body.
    cache: Cache key generation and the on-disk TTL store.
    transform: Path grammar and the extract/rename pipeline.
    client: Transport, auth, request execution and batches.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
