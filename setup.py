from setuptools import setup

__version__ = "1.0.0"
__license__ = "Apache v2"

setup( name = 'loopauth',
       version = __version__,
       description = 'OAuth 2.0 loopback redirect sign in for desktop applications',
       license = __license__,
       packages = [ 'loopauth' ],
       package_data = { 'loopauth': [ 'media/*.html' ] },
       zip_safe = False,
       install_requires = [ 'requests', 'pyyaml', 'tabulate', 'rich' ],
       extras_require = {
           'test': [ 'pytest' ],
       },
       long_description = 'Sign in to a cloud identity provider from a desktop application: a short-lived server on 127.0.0.1 captures the authorization code, which is exchanged for tokens.',
       entry_points = {
           'console_scripts': [
               'loopauth=loopauth.__main__:main',
           ],
       },
)
