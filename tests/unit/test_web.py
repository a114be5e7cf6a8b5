"""Tests for the web dashboard."""

import pytest
from fastapi.testclient import TestClient

from pi_dashboard.web import DashboardConfig, create_app


@pytest.fixture
def client(services):
    app = create_app(services, DashboardConfig(title="Pi Test Dashboard"), refresh=False)
    with TestClient(app) as test_client:
        yield test_client


class TestWebDashboard:
    """Test the dashboard routes."""

    def test_home_page(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "Pi Test Dashboard" in response.text
        assert "Pi News" in response.text

    def test_status(self, client):
        data = client.get("/api/status").json()

        assert data['status'] == "running"
        assert data['currency'] == "USD"
        assert data['config']['title'] == "Pi Test Dashboard"

    def test_price(self, client):
        data = client.get("/api/price").json()

        assert data['price'] == 0.5
        assert data['source'] == "okx"
        assert data['symbol'] == "$"

    def test_unknown_currency(self, client):
        response = client.get("/api/price", params={'currency': "BTC"})

        assert response.status_code == 422

    def test_history(self, client):
        data = client.get("/api/history", params={'days': 2}).json()

        assert len(data['points']) == 30
        assert data['error'] is None

    def test_history_days_bounds(self, client):
        assert client.get("/api/history", params={'days': 0}).status_code == 422

    def test_prediction(self, client):
        data = client.get("/api/prediction", params={'timeframe': "1hour"}).json()

        assert data['prediction']['timeFrame'] == "1hour"
        assert data['prediction']['trend'] == "up"
        assert len(data['prediction']['reasons']) in (2, 3)

    def test_unknown_time_frame(self, client):
        response = client.get("/api/prediction", params={'timeframe': "3days"})

        assert response.status_code == 422

    def test_prediction_chart(self, client):
        data = client.get("/api/charts/prediction").json()

        assert data['chart']['data']
        assert data['logScale'] is False

    def test_news_without_token(self, client):
        data = client.get("/api/news").json()

        assert len(data['items']) == 5
        assert data['notice'] == "Twitter Bearer Token is not configured"

    def test_news_category(self, client):
        data = client.get("/api/news", params={'category': "community"}).json()

        assert {item['category'] for item in data['items']} == {"community"}

    def test_unknown_news_category(self, client):
        assert client.get("/api/news", params={'category': "sports"}).status_code == 422

    def test_twitter_news_without_token(self, client):
        response = client.get("/api/twitter-news")

        assert response.status_code == 500
        assert response.json() == {'error': "Twitter Bearer Token is not configured"}

    def test_news_retry(self, client):
        response = client.post("/api/news/retry")

        assert response.status_code == 200
        assert len(response.json()['items']) == 5

    def test_network_stats(self, client):
        data = client.get("/api/network-stats").json()

        assert data['activeUsers'] >= 35_000_000

    def test_calculate(self, client):
        data = client.get("/api/calculate", params={'amount': "1000"}).json()

        assert data['value'] == 500.0
        assert data['formatted'] == "$500.00"

    def test_switch_currency(self, client, primary_client):
        response = client.put("/api/currency/eur")

        assert response.json() == {'currency': "EUR", 'symbol': "€"}
        data = client.get("/api/price").json()
        assert data['currency'] == "EUR"
        assert primary_client.price_calls[-1] == "EUR"

    def test_switch_to_unknown_currency(self, client):
        assert client.put("/api/currency/xyz").status_code == 422
