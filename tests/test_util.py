from symbol.signon.app.util.__main__ import genSecret, listClients, registerClient


async def test_register_and_list_clients(redis_store, capsys):
    await registerClient(
        redis_store,
        "demo-app",
        ["https://app.example.com/callback", "myapp://callback"],
        "Demo App",
        production=True,
    )
    assert "demo-app registered" in capsys.readouterr().out

    await registerClient(
        redis_store, "demo-app", ["https://app.example.com/v2"], None, production=True
    )
    assert "demo-app updated" in capsys.readouterr().out

    await listClients(redis_store)
    out = capsys.readouterr().out
    assert "demo-app" in out
    assert "https://app.example.com/v2" in out
    assert "myapp://callback" not in out


async def test_register_client_rejects_insecure_redirect(redis_store, capsys):
    await registerClient(
        redis_store, "demo-app", ["http://app.example.com/cb"], None, production=True
    )

    assert "Invalid redirect URI" in capsys.readouterr().out
    assert await redis_store.find_client("demo-app") is None


async def test_gen_secret(capsys):
    await genSecret()
    assert len(capsys.readouterr().out.strip()) >= 64
