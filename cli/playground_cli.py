#!/usr/bin/env python3
"""
Neuron Playground CLI with Rich Styling
Command shell over the playground engine: pick a dataset, edit layers,
train, inspect neurons and export a 3-D view.
"""

import argparse
import asyncio
import functools
import inspect
import signal
import sys
import time
import traceback

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from tqdm import tqdm

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import FileHistory, InMemoryHistory

from playground.config import load_config, load_default_config
from playground.errors import PlaygroundError
from playground.log import setup_logger
from playground.orchestrator import Playground
from playground.render import build_figure, write_html
from playground.topology import RunPhase


def timed_command(func):
    """Decorator to print command execution time if timing is enabled."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not self.timing_enabled:
            return func(self, *args, **kwargs)
        start = time.perf_counter()
        result = func(self, *args, **kwargs)
        elapsed = time.perf_counter() - start
        self.console.print(f"[dim]Command execution time: {elapsed:.4f} seconds[/dim]")
        return result

    return wrapper


def _parse_int(console, value, name):
    try:
        return int(value)
    except ValueError:
        console.print(f"[red]Invalid {name}: {value}[/red]")
        return None


class PlaygroundCLI:
    """
    Command-line interface for the neuron playground
    """

    def __init__(self, playground=None, console=None):
        self.console = console or Console()
        self.playground = playground or Playground(load_default_config())
        self.running = True
        self.timing_enabled = False
        self.session = None

        self.commands = {
            "help": self.cmd_help,
            "h": self.cmd_help,
            "dataset": self.cmd_dataset,
            "add_layer": self.cmd_add_layer,
            "del_layer": self.cmd_remove_layer,
            "resize": self.cmd_resize,
            "add_neuron": self.cmd_add_neuron,
            "del_neuron": self.cmd_remove_neuron,
            "init": self.cmd_initializer,
            "train": self.cmd_train,
            "reset": self.cmd_reset,
            "predict": self.cmd_predict,
            "neurons": self.cmd_neurons,
            "connections": self.cmd_connections,
            "inspect": self.cmd_inspect,
            "history": self.cmd_history,
            "plot": self.cmd_plot,
            "status": self.cmd_status,
            "log_level": self.cmd_set_log_level,
            "toggle_timing": self.cmd_toggle_timing,
            "exit": self.cmd_exit,
            "quit": self.cmd_exit,
        }

    def setup_prompt(self):
        """Set up autocomplete and history for the prompt"""
        self.completer = WordCompleter(
            list(self.commands.keys()), ignore_case=True, sentence=False
        )
        try:
            history = FileHistory(".playground_cli_history")
        except OSError:
            history = InMemoryHistory()
        self.session = PromptSession(history=history, completer=self.completer)

    def print_header(self):
        header = Panel(
            "[bold cyan]Neuron Playground[/bold cyan]\n"
            "Type 'help' for available commands, 'exit' to quit\n"
            "[dim]Use TAB for autocomplete, ↑↓ arrows for history[/dim]",
            style="blue",
            expand=False,
        )
        self.console.print(header)
        self.console.print()

    def print_status(self):
        """Print current playground status"""
        info = self.playground.summary()
        if info["dataset"] is None:
            self.console.print("[red]●[/red] No dataset selected", style="dim")
            return

        phase = self.playground.run_phase
        color = {
            RunPhase.READY: "yellow",
            RunPhase.TRAINING: "green",
            RunPhase.TRAINED: "cyan",
        }.get(phase, "red")
        widths = " → ".join(
            [str(info["input_neurons"])]
            + [str(layer["neurons"]) for layer in info["layers"]]
            + [str(info["output_neurons"])]
        )
        self.console.print(
            f"[{color}]●[/{color}] {phase.value} | "
            f"Dataset: [cyan]{info['dataset']}[/cyan] | "
            f"Layers: [cyan]{widths}[/cyan] | "
            f"Params: [cyan]{info['num_params']}[/cyan] | "
            f"Epoch: [cyan]{info['curr_epoch']}[/cyan] | "
            f"Loss: [cyan]{info['curr_loss']:.4f}[/cyan] | "
            f"Acc: [cyan]{info['curr_acc']:.3f}[/cyan]"
        )

    def execute(self, user_input: str) -> None:
        """Parse and run one command line."""
        parts = user_input.strip().split()
        if not parts:
            return
        command = parts[0].lower()
        args = parts[1:]

        if command not in self.commands:
            self.console.print(f"[red]Unknown command: {command}[/red]")
            self.console.print(
                "Type 'help' for available commands or use TAB for autocomplete"
            )
            return

        handler = self.commands[command]
        try:
            if "params" in inspect.signature(handler).parameters:
                handler(params=args)
            else:
                handler()
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Command interrupted[/yellow]")
        except PlaygroundError as e:
            self.console.print(f"[red]{e}[/red]")

    def run(self):
        """Main command loop"""
        self.setup_prompt()
        self.print_header()

        while self.running:
            self.print_status()
            try:
                user_input = self.session.prompt("\n> ")
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[yellow]Exiting...[/yellow]")
                self.cmd_exit()
                break
            self.execute(user_input)
            self.console.print()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def cmd_help(self):
        """Show help information"""
        commands_info = [
            ("help, h", "Show this help message"),
            ("", ""),
            ("== Dataset & Topology ==", ""),
            ("dataset NAME", "Select dataset (xor, sine, mnist)"),
            ("add_layer", "Append a hidden layer"),
            ("del_layer", "Remove the last hidden layer"),
            ("resize INDEX WIDTH", "Set the width of a hidden layer"),
            ("add_neuron INDEX", "Add a neuron to a hidden layer"),
            ("del_neuron INDEX", "Remove a neuron from a hidden layer"),
            ("init KIND", "Weight initializer (glorot_uniform, he_normal, random_normal, zeros)"),
            ("", ""),
            ("== Training ==", ""),
            ("train [EPOCHS]", "Train the model"),
            ("reset", "Re-initialize weights"),
            ("predict V1 [V2 ...]", "Run inference on one input"),
            ("", ""),
            ("== Inspection ==", ""),
            ("neurons [LAYER]", "List neurons with bias and position"),
            ("connections [LIMIT]", "List connections with strength"),
            ("inspect ID", "Track a neuron's history during training"),
            ("history ID", "Show a tracked neuron's history"),
            ("plot [FILE]", "Export the 3-D view to HTML"),
            ("status", "Show model summary"),
            ("", ""),
            ("== Utility ==", ""),
            ("log_level LEVEL", "Set log level"),
            ("toggle_timing", "Toggle command timing"),
            ("exit, quit", "Exit the shell"),
        ]

        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan", no_wrap=True)
        table.add_column("Description", style="white")
        for cmd, desc in commands_info:
            table.add_row(cmd, desc)
        self.console.print(table)

    @timed_command
    def cmd_dataset(self, params=None):
        """Select a dataset and rebuild for its default plan"""
        if not params:
            self.console.print("[red]Usage: dataset NAME[/red]")
            return
        with self.console.status(f"Loading {params[0]}..."):
            selected = asyncio.run(self.playground.select_dataset(params[0]))
        if selected:
            self.console.print(f"[green]Dataset {params[0]} selected[/green]")
        else:
            self.console.print(f"[yellow]Dataset {params[0]} not selected[/yellow]")

    def _report(self, changed: bool, message: str):
        if changed:
            self.console.print(f"[green]{message}[/green]")
        else:
            self.console.print("[yellow]Rejected: outside the allowed bounds[/yellow]")

    @timed_command
    def cmd_add_layer(self):
        self._report(self.playground.add_layer(), "Layer added")

    @timed_command
    def cmd_remove_layer(self):
        self._report(self.playground.remove_layer(), "Layer removed")

    @timed_command
    def cmd_resize(self, params=None):
        if not params or len(params) < 2:
            self.console.print("[red]Usage: resize INDEX WIDTH[/red]")
            return
        index = _parse_int(self.console, params[0], "layer index")
        width = _parse_int(self.console, params[1], "width")
        if index is None or width is None:
            return
        self._report(
            self.playground.resize_layer(index, width), f"Layer {index} resized to {width}"
        )

    @timed_command
    def cmd_add_neuron(self, params=None):
        if not params:
            self.console.print("[red]Usage: add_neuron INDEX[/red]")
            return
        index = _parse_int(self.console, params[0], "layer index")
        if index is not None:
            self._report(self.playground.add_neuron(index), "Neuron added")

    @timed_command
    def cmd_remove_neuron(self, params=None):
        if not params:
            self.console.print("[red]Usage: del_neuron INDEX[/red]")
            return
        index = _parse_int(self.console, params[0], "layer index")
        if index is not None:
            self._report(self.playground.remove_neuron(index), "Neuron removed")

    @timed_command
    def cmd_initializer(self, params=None):
        if not params:
            self.console.print("[red]Usage: init KIND[/red]")
            return
        self._report(
            self.playground.set_initializer(params[0]), f"Initializer set to {params[0]}"
        )

    @timed_command
    def cmd_train(self, params=None):
        """Train with a progress bar"""
        epochs = None
        if params:
            epochs = _parse_int(self.console, params[0], "number of epochs")
            if epochs is None:
                return
            if epochs <= 0:
                self.console.print("[red]Number of epochs must be positive[/red]")
                return
        total = epochs or self.playground.config.training.epochs

        with tqdm(total=total, desc="Training", unit="epoch") as bar:

            def on_epoch(report):
                bar.update(1)
                bar.set_postfix(loss=f"{report.loss:.4f}", acc=f"{report.accuracy:.3f}")

            reports = self.playground.train(epochs, on_epoch=on_epoch)

        last = reports[-1]
        if self.playground.run_phase == RunPhase.READY:
            self.console.print(f"[yellow]Training stopped at epoch {last.epoch}[/yellow]")
            return
        self.console.print(
            f"[green]Trained to epoch {last.epoch}: "
            f"loss {last.loss:.4f}, accuracy {last.accuracy:.3f}[/green]"
        )

    @timed_command
    def cmd_reset(self):
        self.playground.reset_training()
        self.console.print("[green]Weights re-initialized[/green]")

    @timed_command
    def cmd_predict(self, params=None):
        if not params:
            self.console.print("[red]Usage: predict V1 [V2 ...][/red]")
            return
        try:
            values = [float(p) for p in params]
        except ValueError:
            self.console.print(f"[red]Invalid input values: {params}[/red]")
            return
        result = self.playground.interpret(values)
        self.console.print(f"Prediction: [bold cyan]{result['prediction']}[/bold cyan]")
        if "confidence" in result:
            self.console.print(f"Confidence: {result['confidence']:.1f}%")

    def cmd_neurons(self, params=None):
        """List neurons, optionally for a single layer"""
        layer = None
        if params:
            layer = _parse_int(self.console, params[0], "layer index")
            if layer is None:
                return

        table = Table(title="Neurons", show_header=True)
        table.add_column("ID", style="cyan")
        table.add_column("Type")
        table.add_column("Activation")
        table.add_column("Bias", justify="right")
        table.add_column("Position", justify="right")
        for neuron in self.playground.neurons():
            if layer is not None and neuron["layer_index"] != layer:
                continue
            x, y, z = neuron["position"]
            table.add_row(
                neuron["id"],
                neuron["type"],
                neuron["activation_kind"],
                f"{neuron['bias']:.4f}",
                f"({x:.1f}, {y:.1f}, {z:.1f})",
            )
        self.console.print(table)

    def cmd_connections(self, params=None):
        limit = 50
        if params:
            limit = _parse_int(self.console, params[0], "limit")
            if limit is None:
                return
        connections = self.playground.connections()

        table = Table(title=f"Connections ({len(connections)})", show_header=True)
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Weight", justify="right")
        table.add_column("Strength", justify="right")
        for c in connections[:limit]:
            table.add_row(
                c["source_id"],
                c["dest_id"],
                f"{c['raw_weight']:.4f}",
                f"{c['strength']:.3f}",
            )
        self.console.print(table)
        if len(connections) > limit:
            self.console.print(f"[dim]... {len(connections) - limit} more[/dim]")

    def cmd_inspect(self, params=None):
        if not params:
            tracked = self.playground.history.tracked
            self.console.print(f"Tracked neurons: {', '.join(tracked) or 'none'}")
            return
        if self.playground.inspect_neuron(params[0]):
            self.console.print(f"[green]Tracking {params[0]}[/green]")
        else:
            self.console.print(f"[red]Unknown neuron: {params[0]}[/red]")

    def cmd_history(self, params=None):
        if not params:
            self.console.print("[red]Usage: history ID[/red]")
            return
        samples = self.playground.history_of(params[0])
        if not samples:
            self.console.print(f"[yellow]No history for {params[0]}[/yellow]")
            return

        table = Table(title=f"History of {params[0]}", show_header=True)
        table.add_column("Epoch", justify="right", style="cyan")
        table.add_column("Mean weight", justify="right")
        table.add_column("Bias", justify="right")
        table.add_column("Activation", justify="right")
        for sample in samples:
            table.add_row(
                str(sample.epoch),
                f"{sample.weight:.4f}",
                f"{sample.bias:.4f}",
                f"{sample.activation:.4f}",
            )
        self.console.print(table)

    @timed_command
    def cmd_plot(self, params=None):
        path = params[0] if params else "network.html"
        if not self.playground.neurons():
            self.console.print("[yellow]Nothing to plot, select a dataset first[/yellow]")
            return
        info = self.playground.summary()
        fig = build_figure(
            self.playground.neurons(),
            self.playground.connections(),
            title=f"{info['dataset']} - epoch {info['curr_epoch']}",
            input_box=self.playground.input_box(),
        )
        write_html(fig, path)
        self.console.print(f"[green]Wrote {path}[/green]")

    def cmd_status(self):
        info = self.playground.summary()
        table = Table(title="Model", show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key in (
            "dataset",
            "input_neurons",
            "output_neurons",
            "num_neurons",
            "num_layers",
            "num_params",
            "initializer",
            "curr_phase",
            "curr_epoch",
        ):
            table.add_row(key, str(info[key]))
        for layer in info["layers"]:
            table.add_row(layer["name"], str(layer["neurons"]))
        self.console.print(table)

    def cmd_set_log_level(self, params=None):
        if not params:
            self.console.print("[red]Usage: log_level LEVEL[/red]")
            return
        try:
            setup_logger(params[0])
        except ValueError as e:
            self.console.print(f"[red]{e}[/red]")
            return
        self.console.print(f"[green]Log level set to {params[0].upper()}[/green]")

    def cmd_toggle_timing(self):
        self.timing_enabled = not self.timing_enabled
        state = "enabled" if self.timing_enabled else "disabled"
        self.console.print(f"[green]Command timing {state}[/green]")

    def handle_sigint(self, sig, frame):
        """Ctrl+C stops a running training loop after the current epoch."""
        if self.playground.stop_training():
            self.console.print("\n[yellow]Stopping after the current epoch...[/yellow]")
        else:
            self.console.print("\n[yellow]Interrupted. Type 'exit' or 'quit' to exit.[/yellow]")

    def cmd_exit(self):
        self.playground.teardown()
        self.running = False


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Neuron playground shell")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--dataset", help="Dataset to select on startup")
    args = parser.parse_args()

    try:
        config = load_config(args.config) if args.config else load_default_config()
        setup_logger(config.log_level)
        cli = PlaygroundCLI(Playground(config))
        signal.signal(signal.SIGINT, cli.handle_sigint)
        if args.dataset:
            cli.execute(f"dataset {args.dataset}")
        cli.run()
    except Exception as e:
        console = Console()
        console.print(f"[bold red]A critical error occurred: {e}[/bold red]")
        console.print(f"[red]{traceback.format_exc()}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
