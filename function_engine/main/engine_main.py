"""
Create, run and publish a starter function with the engine configured from the environment.
"""
import sys
import os
import json

# Looks at project root directory; used for finding function_engine
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..")))

# We can now import from different directory
from function_engine.clients.engine_client import create_engine

if __name__ == "__main__":
    service = create_engine()
    tenant_id = os.getenv("FUNCTION_ENGINE_TENANT_ID", "demo")
    payload = json.loads(sys.argv[1]) if len(sys.argv) > 1 else {"name": "engine"}

    # Create function from the starter template and run its draft
    function = service.create(name="starter", description="starter function", tenant_id=tenant_id)
    print(json.dumps(service.execute(function.id, tenant_id, payload).to_dict(), indent=2))

    # Freeze the draft into version 1 and run it through the "latest" alias
    function = service.publish(function.id, tenant_id)
    print(f"Published version {function.latest_version}")
    print(json.dumps(service.execute(function.id, tenant_id, payload).to_dict(), indent=2))

    print('End Process')
