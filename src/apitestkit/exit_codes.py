"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~apitestkit.exceptions.ApiTestKitError` subclass.
CI scripts that call ``apitestkit token`` can inspect the exit code to
tell a configuration mistake from a rejected token request without
parsing stderr.

Example::

    $ apitestkit token --scope read
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the token endpoint rejected the request
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed or the credential identity is incomplete."""

EXIT_TEMPLATE_ERROR = 8
"""A request template, JSON data file, or CSV fixture could not be loaded or rendered."""
