"""Toolbox container lifecycle.

Sequences the engine calls that take a named container from "maybe
missing" to "running with a shell attached":

    [nonexistent] --create--> [configured]
    [configured|exited|stopped] --start--> [running]
    [running] --exec--> [running]
    [running] --stop (on exit)--> [exited]

The container is never removed here.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence

from pettainers.lib.config_parser import ToolboxConfig
from pettainers.lib.engine import ContainerEngine, CreateOptions, EngineError, ExecOptions
from pettainers.lib.provisioning import ProvisioningError, UserSpec, provision_user
from pettainers.lib.state import ContainerState

logger = logging.getLogger(__name__)

TERMINATING_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class LifecycleError(Exception):
    """Raised when a lifecycle step fails fatally."""
    pass


class UnknownStateError(LifecycleError):
    """Raised when the engine reports a state we cannot act on."""

    def __init__(self, name: str, status: str):
        super().__init__(f"Container '{name}' in unknown state: '{status}'")
        self.name = name
        self.status = status


class Terminated(BaseException):
    """Raised inside a session when a terminating signal arrives."""

    def __init__(self, signum: int):
        super().__init__(f"Received signal {signum}")
        self.signum = signum


class Outcome(Enum):
    """Result of ensure_container()."""
    CREATED = "created"
    EXISTS = "exists"
    RUNLABEL = "runlabel"


class LifecycleOrchestrator:
    """Bring a pet container up and attach to it."""

    def __init__(
        self,
        engine: ContainerEngine,
        config: ToolboxConfig,
        name: str,
        user: Optional[UserSpec] = None
    ):
        """Initialize orchestrator.

        Args:
            engine: Engine handler used for every container operation
            config: Toolbox settings
            name: Container name
            user: Host user to mirror into the container (enables user mode)
        """
        self.engine = engine
        self.config = config
        self.name = name
        self.user = user
        self.image = config.image_reference
        self._stopped = False

    @property
    def user_mode(self) -> bool:
        return self.user is not None

    def ensure_image(self) -> None:
        """Pull the image unless it is already present locally.

        Raises:
            LifecycleError: If the pull fails
        """
        if self.engine.image_exists(self.image):
            logger.debug(f"Image {self.image} present locally")
            return
        logger.info(f"Pulling image {self.image}...")
        try:
            self.engine.pull(self.image, authfile=self.config.authfile)
        except EngineError as e:
            raise LifecycleError(f"Failed to pull image '{self.image}': {e}") from e

    def _create_options(self) -> CreateOptions:
        options = CreateOptions.from_config(self.config)
        if self.user is not None:
            home_volume = f"{self.user.home}:{self.user.home}"
            if home_volume not in options.volumes:
                options.volumes.append(home_volume)
        return options

    def ensure_container(self) -> Outcome:
        """Create the container if it does not exist yet.

        The image is only checked, and pulled if needed, when a container
        has to be made.

        Returns:
            RUNLABEL if the image's RUN label took over, CREATED if a new
            container was created, EXISTS if one was already there

        Raises:
            LifecycleError: If the pull, creation or the run label fails
        """
        if self.engine.container_exists(self.name):
            logger.info(f"Container '{self.name}' already exists. Trying to start...")
            logger.info(
                f"(To remove the container and start with a fresh toolbox, "
                f"run: {self.engine.executable} rm '{self.name}')"
            )
            return Outcome.EXISTS

        self.ensure_image()
        logger.info(f"Spawning a container '{self.name}' with image '{self.image}'")
        runlabel = self.engine.image_runlabel(self.image)
        if runlabel:
            logger.info("Detected RUN label in the container image. Using that as the default...")
            logger.debug(f"RUN label: {runlabel}")
            try:
                self.engine.runlabel(self.name, self.image)
            except EngineError as e:
                raise LifecycleError(f"Failed to run container '{self.name}': {e}") from e
            return Outcome.RUNLABEL

        try:
            self.engine.create(self.name, self.image, self._create_options())
        except EngineError as e:
            raise LifecycleError(f"Failed to create container '{self.name}': {e}") from e
        return Outcome.CREATED

    def ensure_running(self) -> ContainerState:
        """Start the container unless it is already running.

        Returns:
            State observed before any start

        Raises:
            UnknownStateError: If the reported state is not recognized
            LifecycleError: If the state query or start fails
        """
        try:
            status = self.engine.container_status(self.name)
        except EngineError as e:
            raise LifecycleError(f"Failed to inspect container '{self.name}': {e}") from e

        state = ContainerState.from_status(status)
        if state.is_running:
            return state
        if not state.needs_start:
            raise UnknownStateError(self.name, status)

        logger.debug(f"Container '{self.name}' is {state.value}, starting")
        try:
            self.engine.start(self.name)
        except EngineError as e:
            raise LifecycleError(f"Failed to start container '{self.name}': {e}") from e
        return state

    def provision_user(self) -> None:
        """Mirror the host user into the container.

        Raises:
            LifecycleError: If provisioning fails
        """
        if self.user is None:
            return
        try:
            provision_user(self.engine, self.name, self.user, self.config.sudo_group)
        except (ProvisioningError, EngineError) as e:
            raise LifecycleError(
                f"{e} (remove the container with "
                f"'{self.engine.executable} rm {self.name}' to retry)"
            ) from e

    def exec_options(self) -> ExecOptions:
        env: Dict[str, str] = {}
        for key in self.config.forward_env:
            value = os.environ.get(key)
            if value is not None:
                env[key] = value
        options = ExecOptions(env=env)
        if self.user is not None:
            options.user = self.user.exec_user
            options.workdir = self.user.home
        return options

    def attach(self, command: Optional[Sequence[str]] = None) -> int:
        """Attach this terminal to a command inside the container.

        Args:
            command: Command vector; defaults to the configured shell

        Returns:
            Exit code of the command
        """
        if command:
            argv: List[str] = list(command)
        else:
            argv = [self.config.toolbox_shell]
            logger.info("Container started successfully. To exit, type 'exit'.")
        return self.engine.exec(self.name, argv, self.exec_options())

    def stop(self) -> None:
        """Stop the container once; failures are ignored."""
        if self._stopped:
            return
        self._stopped = True
        logger.debug(f"Stopping container '{self.name}'")
        self.engine.stop(self.name)

    @contextmanager
    def session(self) -> Iterator["LifecycleOrchestrator"]:
        """Scope in which the container is stopped on every exit path.

        SIGTERM and SIGHUP are turned into Terminated while the session is
        open so that the stop still runs.
        """
        previous = {}

        def _terminate(signum, frame):
            raise Terminated(signum)

        if threading.current_thread() is threading.main_thread():
            for signum in TERMINATING_SIGNALS:
                previous[signum] = signal.signal(signum, _terminate)
        try:
            yield self
        finally:
            # a second signal must not cut the stop short
            for signum in previous:
                signal.signal(signum, signal.SIG_IGN)
            try:
                self.stop()
            finally:
                for signum, handler in previous.items():
                    signal.signal(signum, handler)

    def run(self, command: Optional[Sequence[str]] = None) -> int:
        """Ensure container, image and state, then attach.

        Args:
            command: Command vector to run; defaults to the configured shell

        Returns:
            Exit code of the attached command (0 when the RUN label took over)

        Raises:
            LifecycleError: If any step fails
        """
        with self.session():
            outcome = self.ensure_container()
            if outcome is Outcome.RUNLABEL:
                return 0
            self.ensure_running()
            if outcome is Outcome.CREATED and self.user_mode:
                self.provision_user()
            return self.attach(command)
