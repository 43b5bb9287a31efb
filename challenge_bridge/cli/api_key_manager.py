"""
API Key Management CLI
Command-line interface for the encrypted oracle API key store
"""

import getpass
from typing import Optional
import structlog
from rich.console import Console
from rich.table import Table

from challenge_bridge.core.config import ApplicationConfig

logger = structlog.get_logger()
console = Console()

SERVICE_DESCRIPTIONS = {
    "hyper": "Hyper Solutions oracle (sensor, captcha and cookie generation)",
}


class APIKeyManager:
    """
    CLI interface for API key management
    """

    def __init__(self, config: Optional[ApplicationConfig] = None):
        if config is not None:
            self.config = config
            return
        try:
            self.config = ApplicationConfig()
        except Exception as e:
            console.print(f"[red]Failed to load configuration: {e}[/red]")
            self.config = None

    def set_api_key(self, service: str, api_key: Optional[str] = None) -> bool:
        """
        Set an API key for a service
        If api_key is None, prompt user for input (hidden)
        """
        if not self.config:
            console.print("[red]Configuration not available[/red]")
            return False

        if service not in SERVICE_DESCRIPTIONS:
            console.print(f"[yellow]Warning:[/yellow] '{service}' is not a recognized service")
            console.print(f"Supported services: {', '.join(SERVICE_DESCRIPTIONS)}")
            console.print("Continuing anyway...")

        if api_key is None:
            console.print(f"\n[blue]Setting API key for:[/blue] {service}")
            console.print("[dim]Enter the API key (input will be hidden):[/dim]")
            api_key = getpass.getpass("API Key: ")

            if not api_key:
                console.print("[red]Error: API key cannot be empty[/red]")
                return False

        try:
            self.config.api_keys.save_key(service, api_key)
            console.print(f"[green]API key for '{service}' stored successfully[/green]")
            console.print(f"[dim]Key is encrypted and stored in {self.config.api_keys.key_file}[/dim]")
            return True
        except Exception as e:
            console.print(f"[red]Failed to store API key: {e}[/red]")
            return False

    def list_api_keys(self) -> bool:
        """
        List all configured API key services (not the actual keys)
        """
        if not self.config:
            console.print("[red]Configuration not available[/red]")
            return False

        console.print("\n[bold blue]Configured API Keys[/bold blue]\n")

        try:
            services = self.config.api_keys.list_services()

            if not services:
                console.print("[yellow]No API keys configured[/yellow]")
                console.print("\n[dim]To add an API key:[/dim]")
                console.print("  python main.py --set-api-key hyper <key>")
                return True

            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Service", style="cyan", width=20)
            table.add_column("Status", width=15)
            table.add_column("Description", style="dim")

            for service in sorted(services):
                table.add_row(service, "[green]Configured[/green]", SERVICE_DESCRIPTIONS.get(service, ""))

            console.print(table)
            console.print(f"\n[green]Total configured services: {len(services)}[/green]")
            console.print("\n[dim]Note: Actual API keys are encrypted and not displayed[/dim]")

            return True
        except Exception as e:
            console.print(f"[red]Failed to list API keys: {e}[/red]")
            return False

    def remove_api_key(self, service: str, confirm: bool = True) -> bool:
        """
        Remove an API key for a service
        """
        if not self.config:
            console.print("[red]Configuration not available[/red]")
            return False

        try:
            if service not in self.config.api_keys.list_services():
                console.print(f"[yellow]No API key found for '{service}'[/yellow]")
                return False

            if confirm:
                console.print(f"\n[yellow]Remove API key for '{service}'?[/yellow]")
                answer = input("Type 'yes' to confirm: ")
                if answer.lower() != 'yes':
                    console.print("[dim]Cancelled[/dim]")
                    return False

            self.config.api_keys.remove_key(service)
            console.print(f"[green]API key for '{service}' removed[/green]")
            return True
        except Exception as e:
            console.print(f"[red]Failed to remove API key: {e}[/red]")
            return False

    def test_api_key(self, service: str) -> bool:
        """
        Check that an API key is configured and non-empty
        """
        if not self.config:
            console.print("[red]Configuration not available[/red]")
            return False

        console.print(f"\n[blue]Testing API key for:[/blue] {service}\n")

        if service not in self.config.api_keys.list_services():
            console.print(f"[red]No API key configured for '{service}'[/red]")
            console.print("\n[dim]To add an API key:[/dim]")
            console.print(f"  python main.py --set-api-key {service} YOUR_KEY")
            return False

        api_key = self.config.api_keys.get_key(service)
        if not api_key:
            console.print(f"[red]API key for '{service}' is empty or invalid[/red]")
            return False

        console.print("[green]API key is configured[/green]")
        console.print(f"[dim]Key length: {len(api_key)} characters[/dim]")
        console.print("\n[yellow]Note:[/yellow] This only checks that the key is stored.")
        console.print("Run a session against a protected page to verify it with the oracle.")
        return True


# CLI command functions
def set_api_key_command(service: str, api_key: Optional[str] = None):
    """CLI command to set an API key"""
    manager = APIKeyManager()
    success = manager.set_api_key(service, api_key)
    return 0 if success else 1


def list_api_keys_command():
    """CLI command to list API keys"""
    manager = APIKeyManager()
    success = manager.list_api_keys()
    return 0 if success else 1


def remove_api_key_command(service: str):
    """CLI command to remove an API key"""
    manager = APIKeyManager()
    success = manager.remove_api_key(service)
    return 0 if success else 1


def test_api_key_command(service: str):
    """CLI command to test an API key"""
    manager = APIKeyManager()
    success = manager.test_api_key(service)
    return 0 if success else 1
