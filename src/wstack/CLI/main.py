"""
Command Line Interface for wstack.
"""
import functools
import signal
import sys
import threading
from contextlib import contextmanager

import click

from ..BUILDERS.image_builder import ImageBuilder
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..ENGINE.context import CancelContext
from ..errors import AggregatedError, WStackError
from ..MANAGERS.lifecycle_controller import LifecycleController
from ..MANAGERS.progress_sink import LogProgressSink, RichProgressSink
from ..MANAGERS.volume_manager import VolumeManager
from ..PARSERS.config_parser import load_config
from ..REGISTRY.image_puller import ImagePuller
from ..REGISTRY.image_pusher import ImagePusher
from ..SERVICES.base import container_name
from ..SERVICES.registry import ServiceRegistry


def handle_errors(fn):
    """
    Turns wstack and engine failures into a clean exit with a message.
    """
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except AggregatedError as e:
            if e.cancelled:
                click.echo("Cancelled.", err=True)
                sys.exit(130)
            for error in e:
                click.echo(f"Error: {error}", err=True)
            sys.exit(1)
        except WStackError as e:
            raise click.ClickException(str(e))
        except ENGINE_ERRORS as e:
            raise click.ClickException(f"container engine: {describe_error(e)}")
    return wrapper


@contextmanager
def session(obj, config):
    """
    Opens the engine connection, the progress sink and a cancel context wired to Ctrl+C.
    """
    cancel = CancelContext(timeout=obj.get("deadline"))

    def on_interrupt(signum, frame):
        # Cancel callbacks close sockets, which must not run inside the handler.
        threading.Thread(target=cancel.cancel, args=("interrupted",), daemon=True).start()

    previous = signal.signal(signal.SIGINT, on_interrupt)
    sink = LogProgressSink() if obj["plain"] else RichProgressSink()
    try:
        with EngineClient.from_env() as engine, sink:
            yield LifecycleController(engine, config, sink, cancel, write=click.echo)
    finally:
        signal.signal(signal.SIGINT, previous)
        cancel.release()


def stack_config(obj, **overrides):
    config = load_config(obj["config_path"])
    return config.model_copy(update=overrides)


@click.group()
@click.option('--config', '-c', 'config_path', default=None, help='Path to world.yaml')
@click.option('--plain', is_flag=True, help='Log progress lines instead of the live display')
@click.option('--deadline', type=float, default=None, help='Cancel the operation after this many seconds')
@click.pass_context
def cli(ctx, config_path, plain, deadline):
    """
    wstack - builds and runs the cardinal game shard stack in containers.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['plain'] = plain
    ctx.obj['deadline'] = deadline


@cli.command()
@click.option('--push', 'push_to', default=None, metavar='TARGET', help='Registry to push the images to')
@click.option('--auth', default='', help='Base64 encoded registry auth for --push')
@click.option('--debug', is_flag=True, help='Build the debug image')
@click.option('--telemetry', is_flag=True, help='Include telemetry services')
@click.pass_context
@handle_errors
def build(ctx, push_to, auth, debug, telemetry):
    """Pull dependencies, build the stack images and optionally push them."""
    config = stack_config(ctx.obj, debug=debug, telemetry=telemetry, build=True)
    services = ServiceRegistry(config).stack()
    with session(ctx.obj, config) as controller:
        VolumeManager(controller.engine).ensure(config.namespace)
        ImagePuller(controller.engine, controller.sink, controller.ctx).pull_all(services)
        ImageBuilder(controller.engine, config, controller.sink, controller.ctx).build_all(services)
        if push_to:
            built = [s for s in services if s.needs_build]
            ImagePusher(controller.engine, controller.sink, controller.ctx).push_all(push_to, auth, built)
    click.echo("Build finished.")


@cli.command()
@click.option('--detach', '-d', is_flag=True, help='Run in background')
@click.option('--build', is_flag=True, help='Rebuild images before starting')
@click.option('--debug', is_flag=True, help='Run cardinal under the debugger')
@click.option('--telemetry', is_flag=True, help='Enable tracing and metrics services')
@click.option('--timeout', type=int, default=0, show_default=True,
              help='Seconds to wait for containers in detached mode')
@click.pass_context
@handle_errors
def start(ctx, detach, build, debug, telemetry, timeout):
    """Start the stack."""
    config = stack_config(ctx.obj, detach=detach, build=build, debug=debug, telemetry=telemetry, timeout=timeout)
    services = ServiceRegistry(config).stack()
    with session(ctx.obj, config) as controller:
        controller.start(services)
    if config.detach:
        click.echo("Stack started.")


@cli.command()
@click.pass_context
@handle_errors
def stop(ctx):
    """Stop every container of the stack. Data is kept."""
    config = stack_config(ctx.obj)
    services = ServiceRegistry(config).full_stack()
    with session(ctx.obj, config) as controller:
        controller.stop(services)
    click.echo("Stack stopped.")


@cli.command()
@click.option('--detach', '-d', is_flag=True, help='Run in background after a rebuild')
@click.option('--build', is_flag=True, help='Rebuild images and recreate the stack')
@click.pass_context
@handle_errors
def restart(ctx, detach, build):
    """Restart the stack."""
    config = stack_config(ctx.obj, detach=detach, build=build)
    services = ServiceRegistry(config).stack()
    with session(ctx.obj, config) as controller:
        controller.restart(services)
    click.echo("Stack restarted.")


@cli.command()
@click.confirmation_option(prompt='This removes every container and the stack data volume. Continue?')
@click.pass_context
@handle_errors
def purge(ctx):
    """Remove the containers, the data volume and the network."""
    config = stack_config(ctx.obj)
    services = ServiceRegistry(config).full_stack()
    with session(ctx.obj, config) as controller:
        controller.purge(services)
    click.echo("Stack purged.")


@cli.command(name='exec', context_settings={'ignore_unknown_options': True})
@click.argument('container')
@click.argument('command', nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
@handle_errors
def exec_command(ctx, container, command):
    """Run COMMAND in a running container. CONTAINER may be a service name such as cardinal."""
    config = stack_config(ctx.obj)
    if container in ServiceRegistry.names():
        container = container_name(config, container)
    with session(ctx.obj, config) as controller:
        output = controller.exec(container, list(command))
    click.echo(output, nl=not output.endswith("\n"))


def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})


if __name__ == '__main__':
    main()
