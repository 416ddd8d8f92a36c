from rentmarket import create_app

app = create_app()
