import os, sys
from setuptools import setup, find_namespace_packages
from setuptools.command.build_py import build_py as _build

CLASSIFIERS = [
    'Operating System :: POSIX',
    'Operating System :: MacOS :: MacOS X',
    'Intended Audience :: Developers',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Topic :: Internet :: WWW/HTTP :: WSGI :: Application'
]

pkgdir = os.path.dirname(os.path.abspath(__file__))

def get_version():
    out = "0.0.dev0"
    versfile = os.path.join(os.environ.get('PACKAGE_DIR', pkgdir), 'VERSION')
    if os.path.exists(versfile):
        with open(versfile) as fd:
            parts = fd.readline().split()
        if len(parts) > 0:
            out = parts[-1]
    return out

def write_version_mod(version):
    versmodf = os.path.join(pkgdir, "python", "dsp", "platform", "version.py")
    with open(versmodf, 'w') as fd:
        fd.write('"""')
        fd.write("""
An identification of the subsystem version.  Note that this module file gets
(over-) written by the build process.
""")
        fd.write('"""\n\n')
        fd.write('__version__ = "')
        fd.write(version)
        fd.write('"\n')

class build(_build):

    def run(self):
        write_version_mod(get_version())
        _build.run(self)

setup(name='dsp-platform',
      version=get_version(),
      description="dsp.platform: REST dispatch core and web front end for DSP platform services",
      scripts=[ 'scripts/dsp-uwsgi.py' ],
      package_dir={'': 'python'},
      packages=find_namespace_packages(where='python', include=['dsp', 'dsp.*']),
      python_requires='>=3.8',
      install_requires=[
          "PyJWT",
          "pyyaml",
          "pymongo",
          "websockets",
          "requests",
          "argon2-cffi"
      ],
      extras_require={
          "test": [ "pytest" ],
          "uwsgi": [ "uwsgi" ]
      },
      cmdclass={'build_py': build},
      classifiers=CLASSIFIERS,
      zip_safe=False
)
