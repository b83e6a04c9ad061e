"""Application bootstrap/wiring."""

import logging
from dataclasses import dataclass

from bigcsv_migrator.application.services import (
    Dispatcher,
    GlobalVerifyService,
    LoadService,
    ManagementService,
    SignalIntakeService,
    StateGateway,
    TranscodeService,
    VerifyService,
)
from bigcsv_migrator.config import RepositoryBackend, Settings
from bigcsv_migrator.domain.ports import MigrationRepository, TargetDatabase
from bigcsv_migrator.infrastructure.cluster import ClusterForwarder
from bigcsv_migrator.infrastructure.files import SourceFormat
from bigcsv_migrator.infrastructure.repositories import (
    InMemoryMigrationRepository,
    PostgresMigrationRepository,
)
from bigcsv_migrator.infrastructure.runtime import BoundedWorkerPool, JobControl, TaskLock
from bigcsv_migrator.infrastructure.signals import SignalDirectoryScanner
from bigcsv_migrator.infrastructure.target import PostgresTargetDatabase, TargetPoolManager

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MigrationRuntime:
    """Composed service graph of one node."""

    settings: Settings
    repository: MigrationRepository
    target: TargetDatabase
    job_control: JobControl
    task_lock: TaskLock
    state_gateway: StateGateway
    transcode_service: TranscodeService
    load_service: LoadService
    verify_service: VerifyService
    dispatcher: Dispatcher
    signal_intake: SignalIntakeService
    scanner: SignalDirectoryScanner | None
    management_service: ManagementService
    forwarder: ClusterForwarder
    started: bool = False

    async def startup(self) -> None:
        """Recover in-flight work of this node, then start the background loops."""

        if self.started:
            return
        node_id = self.settings.node_id
        reset = await self.state_gateway.recover_in_flight(node_id)
        logger.info("Startup recovery on node '%s' reset %s task(s).", node_id, reset)
        self.job_control.replace(await self.repository.list_inactive_job_ids())
        await self.dispatcher.start()
        if self.scanner is not None:
            await self.scanner.start()
        self.started = True

    async def shutdown(self) -> None:
        """Stop background loops and release database resources."""

        if self.scanner is not None:
            await self.scanner.stop()
        await self.dispatcher.stop()
        await self.target.close()
        await self.repository.close()
        self.started = False


def _build_repository(settings: Settings) -> MigrationRepository:
    if settings.repository_backend == RepositoryBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "BIGCSV_POSTGRES_DSN is required when BIGCSV_REPOSITORY_BACKEND=postgres."
            )
        return PostgresMigrationRepository(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryMigrationRepository()


def _build_target(settings: Settings) -> TargetDatabase:
    return PostgresTargetDatabase(
        TargetPoolManager(
            min_pool_size=settings.target_pool_min_size,
            max_pool_size=settings.target_pool_max_size,
            command_timeout_seconds=settings.target_command_timeout_seconds,
        ),
        source_row_no_column=settings.source_row_no_column,
        split_id_column=settings.split_id_column,
        fetch_size=settings.verify_fetch_size,
    )


def _source_format(settings: Settings) -> SourceFormat:
    return SourceFormat(
        encoding=settings.source_encoding,
        delimiter=settings.csv_delimiter,
        quote_char=settings.csv_quote_char,
        has_header=settings.csv_has_header,
        record_separator=settings.record_separator,
        tunneling_enabled=settings.tunneling_enabled,
    )


def build_runtime(
    settings: Settings,
    *,
    repository: MigrationRepository | None = None,
    target: TargetDatabase | None = None,
) -> MigrationRuntime:
    """Compose service graph."""

    if repository is None:
        repository = _build_repository(settings)
    if target is None:
        target = _build_target(settings)
    job_control = JobControl()
    task_lock = TaskLock()
    state_gateway = StateGateway(repository)
    source_format = _source_format(settings)

    transcode_service = TranscodeService(
        repository=repository,
        state_gateway=state_gateway,
        target=target,
        job_control=job_control,
        source_format=source_format,
        output_dir=settings.output_dir,
        split_rows=settings.split_rows,
        step_rows=settings.transcode_step_rows,
    )
    load_service = LoadService(
        repository=repository,
        state_gateway=state_gateway,
        target=target,
        job_control=job_control,
        output_dir=settings.output_dir,
        max_retries=settings.load_max_retries,
        retry_base_delay_seconds=settings.load_retry_base_delay_seconds,
        pre_load_sql=settings.load_pre_sql,
    )
    verify_service = VerifyService(
        repository=repository,
        state_gateway=state_gateway,
        target=target,
        job_control=job_control,
        source_format=source_format,
        output_dir=settings.output_dir,
        verify_content=settings.verify_content,
        strategy=settings.verify_strategy,
        max_diff_count=settings.verify_max_diff_count,
        stop_check_rows=settings.verify_stop_check_rows,
        delete_split_artifacts_on_pass=settings.delete_split_artifacts_on_pass,
    )
    dispatcher = Dispatcher(
        repository=repository,
        state_gateway=state_gateway,
        task_lock=task_lock,
        job_control=job_control,
        transcode_service=transcode_service,
        load_service=load_service,
        verify_service=verify_service,
        transcode_pool=BoundedWorkerPool("transcode", settings.transcode_workers),
        load_pool=BoundedWorkerPool("load", settings.load_workers),
        verify_pool=BoundedWorkerPool("verify", settings.verify_workers),
        node_id=settings.node_id,
        poll_interval_seconds=settings.dispatch_interval_seconds,
        transcode_fetch_limit=settings.transcode_fetch_limit,
        load_fetch_limit=settings.load_fetch_limit,
        verify_fetch_limit=settings.verify_fetch_limit,
    )

    signal_intake = SignalIntakeService(repository, settings.node_id)
    scanner = None
    if settings.signal_scanner_enabled:
        scanner = SignalDirectoryScanner(
            repository=repository,
            handler=signal_intake.register_signal,
            suffix=settings.signal_file_suffix,
            poll_interval_seconds=settings.signal_scan_interval_seconds,
        )

    cluster_nodes = dict(settings.cluster_nodes)
    if settings.node_base_url:
        cluster_nodes.setdefault(settings.node_id, settings.node_base_url)
    forwarder = ClusterForwarder(
        node_id=settings.node_id,
        nodes=cluster_nodes,
        timeout_seconds=settings.forward_timeout_seconds,
    )

    management_service = ManagementService(
        repository=repository,
        state_gateway=state_gateway,
        target=target,
        job_control=job_control,
        global_verify_service=GlobalVerifyService(repository, target),
        node_id=settings.node_id,
        output_dir=settings.output_dir,
        preview_max_lines=settings.artifact_preview_max_lines,
    )

    return MigrationRuntime(
        settings=settings,
        repository=repository,
        target=target,
        job_control=job_control,
        task_lock=task_lock,
        state_gateway=state_gateway,
        transcode_service=transcode_service,
        load_service=load_service,
        verify_service=verify_service,
        dispatcher=dispatcher,
        signal_intake=signal_intake,
        scanner=scanner,
        management_service=management_service,
        forwarder=forwarder,
    )


__all__ = ["MigrationRuntime", "build_runtime"]
