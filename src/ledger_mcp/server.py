"""MCP server exposing the ledger core as tools."""

import json
from decimal import Decimal
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool

from .config import Settings
from .database import Database
from .exceptions import LedgerError
from .exports import CSV_MEDIA_TYPE, EXPORT_FILENAME
from .ledger import LedgerService
from .logs import configure_logging


# Initialize MCP server
server = Server("ledger-mcp")

EXPORT_RESOURCE_URI = f"ledger://exports/{EXPORT_FILENAME}"

# Global state
_ledger: LedgerService | None = None


def get_ledger() -> LedgerService:
    """Get or create the ledger service from environment settings."""
    global _ledger
    if _ledger is None:
        settings = Settings.from_env()
        settings.db_path.parent.mkdir(parents=True, exist_ok=True)

        db = Database(settings.db_path, busy_timeout=settings.busy_timeout)
        db.init_schema()
        _ledger = LedgerService(db, settings.export_dir)
    return _ledger


def init_for_testing(ledger: LedgerService) -> None:
    """Initialize server with a prepared ledger service."""
    global _ledger
    _ledger = ledger


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        # JSON numbers; integral amounts stay integers
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _text(result: Any) -> list[TextContent]:
    text = json.dumps(result, ensure_ascii=False, indent=2, default=_json_default)
    return [TextContent(type="text", text=text)]


def _id_schema(description: str) -> dict[str, Any]:
    return {"type": "integer", "description": description}


# ============================================================================
# Tools
# ============================================================================

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="create_user",
            description="Create a user. Returns the new user id.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Display name"},
                    "email": {"type": "string", "description": "Email address"},
                },
                "required": ["name", "email"],
            },
        ),
        Tool(
            name="list_users",
            description="List all users with their account counts.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="get_user",
            description="Get a user and the accounts they own.",
            inputSchema={
                "type": "object",
                "properties": {"user_id": _id_schema("User id")},
                "required": ["user_id"],
            },
        ),
        Tool(
            name="create_account",
            description="Open an account for a user with an opening amount.",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Account name"},
                    "amount": {
                        "type": "number",
                        "description": "Opening amount",
                        "default": 0,
                    },
                    "user_id": _id_schema("Owning user id"),
                },
                "required": ["name", "user_id"],
            },
        ),
        Tool(
            name="list_accounts",
            description="List accounts, optionally only those of one user.",
            inputSchema={
                "type": "object",
                "properties": {"user_id": _id_schema("Only accounts of this user")},
            },
        ),
        Tool(
            name="get_account",
            description="Get an account with its transactions. Pass user_id to require ownership.",
            inputSchema={
                "type": "object",
                "properties": {
                    "account_id": _id_schema("Account id"),
                    "user_id": _id_schema("Expected owner"),
                },
                "required": ["account_id"],
            },
        ),
        Tool(
            name="create_transaction",
            description=(
                "Record a transaction on an account and update its balance. "
                "type: 0 = money out, 1 = money in."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Raw transaction name"},
                    "amount": {"type": "number", "description": "Non-negative magnitude"},
                    "type": {"type": "integer", "enum": [0, 1]},
                    "account_id": _id_schema("Account id"),
                },
                "required": ["name", "amount", "type", "account_id"],
            },
        ),
        Tool(
            name="update_transaction",
            description="Amend a transaction; the account balance is corrected by the difference.",
            inputSchema={
                "type": "object",
                "properties": {
                    "transaction_id": _id_schema("Transaction id"),
                    "name": {"type": "string", "description": "New raw name"},
                    "amount": {"type": "number", "description": "New magnitude"},
                    "type": {"type": "integer", "enum": [0, 1]},
                },
                "required": ["transaction_id"],
            },
        ),
        Tool(
            name="delete_transaction",
            description="Delete a transaction and reverse its effect on the account balance.",
            inputSchema={
                "type": "object",
                "properties": {"transaction_id": _id_schema("Transaction id")},
                "required": ["transaction_id"],
            },
        ),
        Tool(
            name="list_transactions",
            description="List an account's transactions in creation order.",
            inputSchema={
                "type": "object",
                "properties": {"account_id": _id_schema("Account id")},
                "required": ["account_id"],
            },
        ),
        Tool(
            name="get_transactions_within_budget",
            description=(
                "Earliest transactions of an account whose cumulative amount "
                "stays within the budget."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "account_id": _id_schema("Account id"),
                    "budget": {"type": "number", "description": "Budget ceiling (inclusive)"},
                },
                "required": ["account_id", "budget"],
            },
        ),
        Tool(
            name="export_transactions",
            description=(
                "Write an account's transactions to the shared CSV export, "
                "replacing the previous export."
            ),
            inputSchema={
                "type": "object",
                "properties": {"account_id": _id_schema("Account id")},
                "required": ["account_id"],
            },
        ),
        Tool(
            name="read_export",
            description="Return the content of the last CSV export.",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="verify_balance",
            description="Check that an account's balance and counter match its transactions.",
            inputSchema={
                "type": "object",
                "properties": {"account_id": _id_schema("Account id")},
                "required": ["account_id"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    ledger = get_ledger()
    try:
        return await _dispatch(ledger, name, arguments or {})
    except LedgerError as e:
        return _text({"error": str(e), "error_type": type(e).__name__})


async def _dispatch(
    ledger: LedgerService, name: str, arguments: dict[str, Any]
) -> list[TextContent]:
    if name == "create_user":
        user_id = await ledger.create_user(arguments.get("name"), arguments.get("email"))
        return _text({"user_id": user_id})

    elif name == "list_users":
        users = await ledger.list_users()
        return _text({"users": [user.to_dict() for user in users]})

    elif name == "get_user":
        user = await ledger.get_user(arguments.get("user_id"))
        accounts = await ledger.list_accounts(user.id)
        return _text({
            "user": user.to_dict(),
            "accounts": [account.to_dict() for account in accounts],
        })

    elif name == "create_account":
        account_id = await ledger.create_account(
            arguments.get("name"),
            arguments.get("amount", 0),
            arguments.get("user_id"),
        )
        return _text({"account_id": account_id})

    elif name == "list_accounts":
        accounts = await ledger.list_accounts(arguments.get("user_id"))
        return _text({"accounts": [account.to_dict() for account in accounts]})

    elif name == "get_account":
        account = await ledger.get_account(
            arguments.get("account_id"), arguments.get("user_id")
        )
        transactions = await ledger.list_transactions(account.id)
        return _text({
            "account": account.to_dict(),
            "transactions": [tx.to_dict() for tx in transactions],
        })

    elif name == "create_transaction":
        tx = await ledger.create_transaction(
            arguments.get("name"),
            arguments.get("amount"),
            arguments.get("type"),
            arguments.get("account_id"),
        )
        return _text(tx.to_dict())

    elif name == "update_transaction":
        tx = await ledger.update_transaction(
            arguments.get("transaction_id"),
            name=arguments.get("name"),
            amount=arguments.get("amount"),
            tx_type=arguments.get("type"),
        )
        return _text(tx.to_dict())

    elif name == "delete_transaction":
        tx = await ledger.delete_transaction(arguments.get("transaction_id"))
        return _text({"deleted": tx.to_dict()})

    elif name == "list_transactions":
        transactions = await ledger.list_transactions(arguments.get("account_id"))
        return _text({"transactions": [tx.to_dict() for tx in transactions]})

    elif name == "get_transactions_within_budget":
        transactions = await ledger.transactions_within_budget(
            arguments.get("account_id"), arguments.get("budget")
        )
        return _text({
            "budget": arguments.get("budget"),
            "total": sum((tx.amount for tx in transactions), Decimal(0)),
            "transactions": [tx.to_dict() for tx in transactions],
        })

    elif name == "export_transactions":
        path = await ledger.export_transactions(arguments.get("account_id"))
        return _text({"status": "exported", "filename": path.name})

    elif name == "read_export":
        payload = await ledger.read_export()
        return _text({
            "filename": payload.filename,
            "media_type": payload.media_type,
            "content": payload.content,
        })

    elif name == "verify_balance":
        result = await ledger.verify_balance(arguments.get("account_id"))
        return _text(result)

    else:
        raise ValueError(f"Unknown tool: {name}")


# ============================================================================
# Resources
# ============================================================================

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=EXPORT_RESOURCE_URI,
            name="Transactions export",
            description="Last CSV export of an account's transactions",
            mimeType=CSV_MEDIA_TYPE,
        ),
    ]


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    if str(uri) == EXPORT_RESOURCE_URI:
        payload = await get_ledger().read_export()
        return payload.content
    raise ValueError(f"Unknown resource: {uri}")


# ============================================================================
# Main
# ============================================================================

def main() -> None:
    """Run the MCP server."""
    import asyncio

    from mcp.server.stdio import stdio_server

    configure_logging(Settings.from_env().log_level)

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
