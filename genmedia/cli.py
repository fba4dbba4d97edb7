import asyncio
import sys

from dataclasses import dataclass
from typing import Annotated

import cappa
import granian

from cappa.output import error_format
from rich.panel import Panel
from rich.prompt import Prompt
from rich.text import Text
from sqlalchemy.exc import SQLAlchemyError
from watchfiles import PythonFilter

from genmedia import __version__
from genmedia.core.conf import settings
from genmedia.database.db import create_tables, drop_tables
from genmedia.utils.console import console

output_help = '\nFor more information, try "[cyan]--help[/]"'


class CustomReloadFilter(PythonFilter):
    """Custom reload filter"""

    def __init__(self) -> None:
        super().__init__(extra_extensions=['.json', '.yaml', '.yml'])


async def init() -> None:
    panel_content = Text()
    panel_content.append('Database configuration', style='bold green')
    panel_content.append('\n\n  • Type: ')
    panel_content.append(f'{settings.DATABASE_TYPE}', style='yellow')
    panel_content.append('\n  • Database: ')
    panel_content.append(f'{settings.DATABASE_SCHEMA}', style='yellow')
    panel_content.append('\n\nTickets', style='bold green')
    panel_content.append('\n\n  • Signup grant: ')
    panel_content.append(f'{settings.TICKET_SIGNUP_GRANT}', style='yellow')
    panel_content.append('\n  • Daily bonus: ')
    panel_content.append(
        f'{settings.DAILY_BONUS_TICKETS} every {settings.DAILY_BONUS_COOLDOWN_HOURS}h',
        style='yellow',
    )

    console.print(Panel(panel_content, title=f'genmedia v{__version__} initialization', border_style='cyan', padding=(1, 2)))
    ok = Prompt.ask('Are you sure to rebuild the database tables? All balances are lost', choices=['y', 'n'], default='n')

    if ok.lower() == 'y':
        console.print('Initializing...', style='white')
        try:
            console.print('Dropping database tables', style='white')
            await drop_tables()
            console.print('Creating database tables', style='white')
            await create_tables()
            console.print('Initialization completed', style='green')
            console.print('\nTry [bold cyan]genmedia run[/bold cyan] to start the service')
        except SQLAlchemyError as e:
            raise cappa.Exit(f'Initialization failed: {e}', code=1)
    else:
        console.print('Initialization cancelled', style='yellow')


def run(host: str, port: int, reload: bool, workers: int) -> None:  # noqa: FBT001
    url = f'http://{host}:{port}'
    docs_url = url + settings.FASTAPI_DOCS_URL
    openapi_url = url + (settings.FASTAPI_OPENAPI_URL or '')

    panel_content = Text()
    panel_content.append('Python version:', style='bold cyan')
    panel_content.append(f'{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}', style='white')

    panel_content.append('\nAPI request address: ', style='bold cyan')
    panel_content.append(f'{url}{settings.FASTAPI_API_V1_PATH}', style='blue')

    panel_content.append('\n\nEnvironment mode: ', style='bold green')
    env_style = 'yellow' if settings.ENVIRONMENT == 'dev' else 'green'
    panel_content.append(f'{settings.ENVIRONMENT.upper()}', style=env_style)

    panel_content.append('\nIdentity verification: ', style='bold green')
    panel_content.append(f'{settings.IDENTITY_VERIFY_MODE}', style='white')

    if settings.ENVIRONMENT == 'dev':
        panel_content.append(f'\n\n📖 Swagger docs: {docs_url}', style='bold magenta')
        panel_content.append(f'\n📡 OpenAPI JSON: {openapi_url}', style='bold magenta')

    console.print(Panel(panel_content, title=f'genmedia v{__version__}', border_style='purple', padding=(1, 2)))
    granian.Granian(
        target='genmedia.main:app',
        interface='asgi',
        address=host,
        port=port,
        reload=not reload,
        reload_filter=CustomReloadFilter,
        workers=workers,
    ).serve()


@cappa.command(help='Initialize the ticket database', default_long=True)
@dataclass
class Init:
    async def __call__(self) -> None:
        await init()


@cappa.command(help='Run API service', default_long=True)
@dataclass
class Run:
    host: Annotated[
        str,
        cappa.Arg(
            default='127.0.0.1',
            help='Host IP address to serve on. Use `127.0.0.1` for local development, '
            '`0.0.0.0` to allow public access such as on a LAN',
        ),
    ]
    port: Annotated[
        int,
        cappa.Arg(default=8000, help='Host port to serve on'),
    ]
    no_reload: Annotated[
        bool,
        cappa.Arg(default=False, help='Disable automatic server reload on file changes'),
    ]
    workers: Annotated[
        int,
        cappa.Arg(default=1, help='Number of worker processes, must be used with `--no-reload`'),
    ]

    def __call__(self) -> None:
        run(host=self.host, port=self.port, reload=self.no_reload, workers=self.workers)


@cappa.command(help='Ticket ledger and generation backend command line interface', default_long=True)
@dataclass
class GenmediaCli:
    subcmd: cappa.Subcommands[Init | Run | None] = None

    async def __call__(self) -> None:
        if self.subcmd is None:
            console.print('Try [bold cyan]genmedia --help[/bold cyan]')


def main() -> None:
    output = cappa.Output(error_format=f'{error_format}\n{output_help}')
    asyncio.run(cappa.invoke_async(GenmediaCli, version=__version__, output=output))
