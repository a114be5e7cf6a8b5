"""Web dashboard server for Pi price, prediction and news."""

import html
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse

from ..core.context import Currency
from ..core.logging import capture_exception
from ..data.models import TimeFrame
from ..news.aggregator import CATEGORIES, format_relative_date
from ..services import DashboardServices
from ..stats.network import format_compact
from ..visualization.charts import ChartConfig, PredictionChart

logger = logging.getLogger(__name__)


@dataclass
class DashboardConfig:
    """Dashboard configuration."""
    host: str = "127.0.0.1"
    port: int = 8080
    title: str = "Pi Dashboard"
    auto_refresh: bool = True


def parse_currency(value: Optional[str]) -> Optional[Currency]:
    if value is None:
        return None
    try:
        return Currency.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def parse_time_frame(value: Optional[str], default: TimeFrame) -> TimeFrame:
    if value is None:
        return default
    try:
        return TimeFrame.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


class WebDashboard:
    """FastAPI-based web dashboard."""

    def __init__(self, config: DashboardConfig, services: DashboardServices,
                 refresh: bool = True):
        """Initialize web dashboard.

        Args:
            config: Dashboard configuration
            services: Shared services, started and stopped with the app
            refresh: Run the periodic refresh tasks while the app is up
        """
        self.config = config
        self.services = services
        self.refresh = refresh
        self.running = False
        self.app = FastAPI(title=config.title, lifespan=self._lifespan)

        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        await self.services.start()
        if self.refresh:
            self.services.start_refresh()
        self.running = True
        try:
            yield
        finally:
            self.running = False
            await self.services.stop()

    def _setup_routes(self):
        """Setup FastAPI routes."""
        services = self.services

        @self.app.get("/", response_class=HTMLResponse)
        async def dashboard_home(request: Request):
            """Dashboard home page."""
            return await self._render_dashboard_template()

        @self.app.get("/api/status")
        async def get_status():
            return {
                "status": "running" if self.running else "stopped",
                "config": {
                    "title": self.config.title,
                    "auto_refresh": self.config.auto_refresh,
                },
                **services.get_status(),
            }

        @self.app.get("/api/price")
        async def get_price(currency: Optional[str] = None, force: bool = False):
            cur = parse_currency(currency)
            quote = await services.price_service.get_current_price(cur, force=force)
            change = services.price_service.get_price_change(cur)
            return {
                **quote.to_dict(),
                "symbol": Currency.parse(quote.currency).symbol,
                "change": change.absolute,
                "changePercent": change.percent,
            }

        @self.app.get("/api/history")
        async def get_history(currency: Optional[str] = None,
                              days: Optional[int] = Query(None, ge=1, le=300)):
            result = await services.price_service.get_historical_prices(parse_currency(currency), days)
            return {
                "points": [p.to_dict() for p in result.value],
                "error": result.error,
                "fromCache": result.from_cache,
                "stale": result.stale,
                "notice": result.notice,
            }

        @self.app.get("/api/prediction")
        async def get_prediction(currency: Optional[str] = None,
                                 timeframe: Optional[str] = None):
            time_frame = parse_time_frame(timeframe, services.default_time_frame)
            report = await services.predict(parse_currency(currency), time_frame)
            return report.to_dict()

        @self.app.get("/api/charts/prediction")
        async def get_prediction_chart(currency: Optional[str] = None,
                                       timeframe: Optional[str] = None):
            time_frame = parse_time_frame(timeframe, services.default_time_frame)
            report = await services.predict(parse_currency(currency), time_frame)
            chart = PredictionChart(ChartConfig(title=f"Pi price projection ({time_frame.value})"))
            chart.create(report.prediction, report.history, time_frame)
            return JSONResponse(content={
                "chart": json.loads(chart.to_json()),
                "logScale": chart.geometry.log_scale,
            })

        @self.app.get("/api/news")
        async def get_news(category: str = "all", refresh: bool = False):
            if category not in CATEGORIES:
                raise HTTPException(status_code=422, detail=f"Unknown category: {category}")
            feed = services.news_aggregator.feed
            if refresh or feed.last_updated is None:
                feed = await services.news_aggregator.fetch()
            return feed.to_dict(category)

        @self.app.post("/api/news/retry")
        async def retry_news():
            feed = await services.news_aggregator.retry()
            return feed.to_dict()

        @self.app.get("/api/twitter-news")
        async def twitter_news():
            status, body = await services.news_proxy.handle()
            return JSONResponse(status_code=status, content=body)

        @self.app.get("/api/network-stats")
        async def get_network_stats():
            stats = services.network_stats.latest or services.network_stats.sample()
            return stats.to_dict()

        @self.app.get("/api/calculate")
        async def get_calculation(amount: str = "1000", currency: Optional[str] = None):
            calculation = await services.calculate(amount, parse_currency(currency))
            return calculation.to_dict()

        @self.app.put("/api/currency/{code}")
        async def set_currency(code: str):
            currency = parse_currency(code)
            services.currency_context.set(currency)
            return {"currency": currency.value, "symbol": currency.symbol}

        @self.app.exception_handler(Exception)
        async def unhandled_error(request: Request, exc: Exception):
            logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
            capture_exception(exc, {"path": request.url.path})
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    async def _render_dashboard_template(self) -> HTMLResponse:
        """Render dashboard HTML page."""
        services = self.services
        currency = services.currency_context.currency
        report = await services.predict()
        prediction = report.prediction

        chart = PredictionChart(ChartConfig(title=""))
        chart.create(prediction, report.history)
        chart_html = chart.to_html(full_html=False)

        feed = services.news_aggregator.feed
        if feed.last_updated is None:
            feed = await services.news_aggregator.fetch()

        stats = services.network_stats.latest or services.network_stats.sample()

        notices = [n for n in (report.quote.error, report.history_error, feed.notice) if n]
        notice_html = "".join(f'<div class="notice">{html.escape(n)}</div>' for n in notices)

        news_html = "".join(
            f'<li><a href="{html.escape(item.url)}">{html.escape(item.title)}</a>'
            f'<span class="meta">{html.escape(item.source)} · '
            f'{format_relative_date(item.published)}</span>'
            f'<p>{html.escape(item.summary)}</p></li>'
            for item in feed.items
        )
        reasons_html = "".join(f"<li>{html.escape(r)}</li>" for r in prediction.reasons)

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <title>{html.escape(self.config.title)}</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; }}
                .header {{ background: #6d28d9; color: white; padding: 20px; margin: -20px -20px 20px -20px; }}
                .dashboard-grid {{ display: grid; grid-template-columns: 1fr 1fr; gap: 20px; }}
                .card {{ border: 1px solid #ddd; padding: 20px; border-radius: 5px; }}
                .notice {{ background: #fef3c7; padding: 10px; border-radius: 5px; margin-bottom: 10px; }}
                .price {{ font-size: 2em; font-weight: bold; }}
                .meta {{ color: #64748b; font-size: 0.8em; margin-left: 8px; }}
            </style>
        </head>
        <body>
            <div class="header">
                <h1>{html.escape(self.config.title)}</h1>
                <p>Pi Network price, projection and news</p>
            </div>
            {notice_html}
            <div class="dashboard-grid">
                <div class="card">
                    <h3>Pi Price ({currency.value})</h3>
                    <div class="price" id="price">{currency.format_price(report.quote.price)}</div>
                    <div id="price-source">Source: {report.quote.source.value}</div>
                </div>
                <div class="card">
                    <h3>Prediction ({prediction.time_frame.value})</h3>
                    <div>Trend: <strong>{prediction.trend.value}</strong>
                         ({prediction.confidence:.0f}% confidence)</div>
                    <div>Target: {currency.symbol}{prediction.target_price:.8f}</div>
                    <ul>{reasons_html}</ul>
                </div>
                <div class="card">
                    <h3>Projection</h3>
                    {chart_html}
                </div>
                <div class="card">
                    <h3>Network</h3>
                    <div>Active users: {format_compact(stats.active_users)}</div>
                    <div>Nodes: {format_compact(stats.total_nodes)}</div>
                    <div>Block height: {stats.block_height:,}</div>
                    <div>TPS: {stats.transactions_per_second}</div>
                    <div>Consensus: {stats.consensus_rate:.1f}%</div>
                </div>
                <div class="card">
                    <h3>Calculator</h3>
                    <input id="amount" value="1000">
                    <div class="price" id="value">-</div>
                </div>
                <div class="card">
                    <h3>Pi News</h3>
                    <ul>{news_html}</ul>
                </div>
            </div>
            <script>
                async function refreshPrice() {{
                    const response = await fetch('/api/price');
                    const data = await response.json();
                    document.getElementById('price').textContent = data.symbol + data.price.toFixed(6);
                    document.getElementById('price-source').textContent = 'Source: ' + data.source;
                }}
                async function calculate() {{
                    const amount = encodeURIComponent(document.getElementById('amount').value);
                    const response = await fetch('/api/calculate?amount=' + amount);
                    const data = await response.json();
                    document.getElementById('value').textContent = data.formatted;
                }}
                document.getElementById('amount').addEventListener('input', calculate);
                calculate();
                setInterval(refreshPrice, 30000);
            </script>
        </body>
        </html>
        """
        return HTMLResponse(content=html_content)

    async def start(self):
        """Start the dashboard server."""
        logger.info(f"Starting dashboard server on {self.config.host}:{self.config.port}")

        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="info"
        )
        server = uvicorn.Server(config)
        await server.serve()


def create_app(services: DashboardServices, config: Optional[DashboardConfig] = None,
               refresh: bool = True) -> FastAPI:
    """Build the FastAPI application."""
    return WebDashboard(config or DashboardConfig(), services, refresh=refresh).app
