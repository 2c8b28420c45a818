from labloan import create_app

app = create_app()
