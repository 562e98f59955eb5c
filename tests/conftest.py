import os
import sys

# Keep developer environment overrides out of the tests
for _key in [k for k in os.environ if k.startswith("MOUNASABET_")]:
    del os.environ[_key]

# Add src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))
