from billing_webhook.app import run

run()
