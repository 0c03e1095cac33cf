"""
Vercel Serverless Entry Point for the Surge SEO AI gateway
Using Mangum for ASGI to AWS Lambda adapter
"""
from mangum import Mangum

from surge_ai.main import app

# Mangum handler for serverless; tables are managed outside the function
handler = Mangum(app, lifespan="off")
