from typing import Annotated

from rich.pretty import pprint

import snapcli
from snapcli import Argument, Option, command, root

verbose: Annotated[bool, Option("v", description="verbose output")] = False


@root("Greeting demo")
def main():
    pprint(snapcli.default().root)


@command(aliases=["hi"])
def hello(
        name: Annotated[str, Argument(description="who to greet")] = "world",
        times: int = Option(description="repeat count", default=1),
):
    for _ in range(times):
        print(f"hello {name}" + ("!" if verbose else ""))


if __name__ == '__main__':
    raise SystemExit(snapcli.run())
