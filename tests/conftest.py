import logging
import os

from hypothesis import settings


logging.basicConfig(level=logging.DEBUG if 'DEBUG' in os.environ else logging.INFO)

settings.register_profile('default', max_examples=100, deadline=None)
settings.register_profile('ci', max_examples=500, deadline=None)
settings.load_profile(os.environ.get('HYPOTHESIS_PROFILE', 'default'))
