"""Built-in CLI sub-commands for ovrmnd.

* :mod:`~ovrmnd.commands.call` -- call an endpoint, operation or alias,
  once or as a batch.
* :mod:`~ovrmnd.commands.list` -- show configured services and their
  endpoints.
* :mod:`~ovrmnd.commands.validate` -- check service files for errors and
  likely mistakes.
* :mod:`~ovrmnd.commands.init` -- scaffold a service file from a template.
* :mod:`~ovrmnd.commands.cache` -- inspect and clear the response cache.

``cache`` is a :class:`typer.Typer` sub-application; the others are plain
callbacks registered on the root app.
"""
