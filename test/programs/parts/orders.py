from snapcli import command

calls = []


@command("orders list", description="List orders")
def list_orders(limit: int = 10):
    calls.append(("orders list", limit))


@command("orders show")
def show_order(identifier: int):
    calls.append(("orders show", identifier))
