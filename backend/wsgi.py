from tradeflow import create_app

app = create_app()
