"""
Session and profile state for client applications.

This package keeps the single authoritative answer to "who is the current
user, and what is their profile record", while the identity provider delivers
asynchronous, unordered login/logout notifications and the profile must be
looked up in a separate data store that may be slow, empty, or failing.

Quick start
-----------

1. Install this package into your virtual environment.
2. Create a :class:`.SessionContext` once, at application start, and
   initialize it from within the running event loop.
3. Hand the context to consumers. They read snapshots and subscribe to
   changes; they never write the session state.

.. code-block:: python

   from authstate.factory import create_context

   async def main() -> None:
       context = create_context({'PROFILE_DATABASE_URI': 'sqlite:///p.db'})
       await context.init()
       state = await context.wait_ready()
       if state.profile is not None:
           print(f'Welcome back, {state.profile.display_name}')

Every identity change issues a new generation and is reconciled exactly once
(see :mod:`.reconciler`). Results from superseded generations, lookups that
lose the deadline race, and consumers that have torn down are dropped, never
applied.
"""

from .domain import Identity, Profile, SessionState
from .context import SessionContext
from .reconciler import Reconciliation
