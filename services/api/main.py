from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .utils.config import PerformanceSettings, load_performance_settings, setup_logging
from .utils.fault_injector import FaultInjector
from .utils.middleware import PerformanceMiddleware
from .utils.performance import PerformanceMonitor
from .utils.telemetry import MetricsEmitter, TelemetrySink, build_sink

from .routes.health import router as health_router
from .routes.baseline import router as baseline_router
from .routes.featureflag import router as featureflag_router
from .routes.products import router as products_router
from .routes.slowproducts import router as slowproducts_router
from .routes.cpuintensive import router as cpuintensive_router
from .routes.metrics import router as metrics_router


def create_app(
    settings: PerformanceSettings | None = None,
    monitor: PerformanceMonitor | None = None,
    sink: TelemetrySink | None = None,
) -> FastAPI:
    settings = settings or load_performance_settings()
    setup_logging(settings.log_level)

    monitor = monitor or PerformanceMonitor(settings)
    sink = sink or build_sink(settings)
    emitter = MetricsEmitter(monitor, sink)

    app = FastAPI(title="SRE Perf Demo API", version="0.1.0")
    app.state.settings = settings
    app.state.monitor = monitor
    app.state.sink = sink
    app.state.emitter = emitter
    app.state.faults = FaultInjector(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # added last so it wraps everything, CORS included
    app.add_middleware(PerformanceMiddleware, monitor=monitor, emitter=emitter)

    app.include_router(health_router)
    app.include_router(baseline_router)
    app.include_router(featureflag_router)
    app.include_router(products_router)
    app.include_router(slowproducts_router)
    app.include_router(cpuintensive_router)
    app.include_router(metrics_router)
    return app


app = create_app()
