def post(client, url, payload, headers):
    """POST JSON and return the envelope's data, failing on any error status."""
    response = client.post(url, json=payload, headers=headers)
    body = response.get_json()
    assert response.status_code in (200, 201), body
    return body['data']


def error_code(response):
    return response.get_json()['error']['code']
