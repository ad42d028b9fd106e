def test_metrics_endpoint_exposes_prometheus(app):
    with app.test_client() as client:
        client.get('/health')
        resp = client.get('/api/metrics')
        assert resp.status_code == 200
        body = resp.data.decode('utf-8')
        # Basic presence of our metric names
        assert 'rx_http_requests_total' in body
        assert 'rx_payment_attempts_total' in body
        assert 'rx_documents_generated_total' in body
        assert 'rx_emails_total' in body
        assert 'endpoint="main.health"' in body
        # Check content type
        assert resp.mimetype.startswith('text/plain')


def test_payment_and_email_observations(app):
    from rxportal.utils.prom_metrics import observe_payment, observe_email

    observe_payment('fortispay', 'ach', True, 0.25)
    observe_email('campaign', False)
    with app.test_client() as client:
        body = client.get('/api/metrics').data.decode('utf-8')
    assert 'rx_payment_attempts_total{processor="fortispay",method="ach",outcome="success"}' in body
    assert 'rx_emails_total{email_type="campaign",outcome="failed"}' in body
