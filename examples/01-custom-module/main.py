"""
Custom Module Example

This example demonstrates the dispatch pattern without HTTP:
1. Write a middleware unit
2. Write a handler module whose parameters request it
3. Build the route table and dispatch requests

Run: python examples/01-custom-module/main.py
"""

import asyncio

from rollcall.pipeline import (
    Dispatcher,
    DispatchRequest,
    Failure,
    Middleware,
    MiddlewareRegistry,
    Success,
    build_route_table,
    handler,
)

# =============================================================================
# Middleware
# =============================================================================


class ApiKeyMiddleware(Middleware):
    """Accepts requests carrying x-api-key: demo."""

    @property
    def name(self) -> str:
        return "__apiKey"

    async def run(self, ctx):
        key = ctx.request.header("x-api-key")
        if key != "demo":
            self.reject(ctx, code=401, errors="Missing or invalid API key")
        return {"client": "demo-client"}


# =============================================================================
# Handler Module
# =============================================================================


class NotesModule:
    name = "notes"
    http_exposed = ("addNote", "get=listNotes")

    def __init__(self):
        self._notes: list[dict] = []

    @property
    def methods(self):
        return {"addNote": self.add_note, "listNotes": self.list_notes}

    @handler("addNote", params=("text", "__apiKey"))
    async def add_note(self, args):
        text = (args.get("text") or "").strip()
        if not text:
            return Failure("text is required", code=400)
        note = {"id": len(self._notes) + 1, "text": text, "by": args["__apiKey"]["client"]}
        self._notes.append(note)
        return Success({"note": note}, code=201)

    @handler("listNotes")
    async def list_notes(self, args):
        return Success({"notes": list(self._notes)})


# =============================================================================
# Main
# =============================================================================


async def main():
    registry = MiddlewareRegistry([ApiKeyMiddleware()])
    routes = build_route_table([NotesModule()], registry)
    dispatcher = Dispatcher(routes, registry)

    for entry in routes.describe():
        print(f"{entry['route']:<28} middleware={entry['middleware']}")
    print()

    requests = [
        DispatchRequest(verb="post", module_name="notes", method_name="addNote", body={"text": "hi"}),
        DispatchRequest(
            verb="post",
            module_name="notes",
            method_name="addNote",
            body={"text": "hello"},
            headers={"x-api-key": "demo"},
        ),
        DispatchRequest(verb="get", module_name="notes", method_name="listNotes"),
        DispatchRequest(verb="post", module_name="ghost", method_name="anything"),
    ]

    for request in requests:
        response = await dispatcher.handle(request)
        print(f"{request.verb.upper()} {request.module_name}.{request.method_name}")
        print(f"  -> {response.envelope.to_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
